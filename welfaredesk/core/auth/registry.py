"""
Authorization plugin registry.

Allows registering policy engines, scope providers and permission
conditions without modifying core code. Implementations register
themselves using decorators.

Usage:
    @AuthRegistry.policy_engine("rbac")
    class RBACPolicyEngine(PolicyEngine):
        ...

    # Later, get by name:
    engine = AuthRegistry.get_policy_engine("rbac", session_factory=..., ...)
"""

from typing import Type, Callable, Any
from .interfaces import ConditionEvaluator, PolicyEngine, ScopeProvider


class AuthRegistry:
    """
    Central registry for authorization components.

    Components register themselves using decorators.
    """

    _policy_engines: dict[str, Type[PolicyEngine]] = {}
    _scope_providers: dict[str, Type[ScopeProvider]] = {}
    _condition_evaluators: dict[str, Type[ConditionEvaluator]] = {}

    # ============================================================
    # REGISTRATION DECORATORS
    # ============================================================

    @classmethod
    def policy_engine(cls, name: str) -> Callable[[Type[PolicyEngine]], Type[PolicyEngine]]:
        """Decorator to register a policy engine."""
        def decorator(engine_class: Type[PolicyEngine]) -> Type[PolicyEngine]:
            cls._policy_engines[name] = engine_class
            return engine_class
        return decorator

    @classmethod
    def scope_provider(cls, name: str) -> Callable[[Type[ScopeProvider]], Type[ScopeProvider]]:
        """Decorator to register a scope provider."""
        def decorator(provider_class: Type[ScopeProvider]) -> Type[ScopeProvider]:
            cls._scope_providers[name] = provider_class
            return provider_class
        return decorator

    @classmethod
    def condition(cls, condition_type: str) -> Callable[[Type[ConditionEvaluator]], Type[ConditionEvaluator]]:
        """
        Decorator to register a condition evaluator.

        Usage:
            @AuthRegistry.condition("time_window")
            class TimeWindowCondition(ConditionEvaluator):
                ...
        """
        def decorator(evaluator_class: Type[ConditionEvaluator]) -> Type[ConditionEvaluator]:
            cls._condition_evaluators[condition_type] = evaluator_class
            return evaluator_class
        return decorator

    # ============================================================
    # GETTERS
    # ============================================================

    @classmethod
    def get_policy_engine(cls, name: str, **kwargs: Any) -> PolicyEngine:
        """
        Get a policy engine by name.

        Args:
            name: Registered name of the engine
            **kwargs: Arguments to pass to engine constructor

        Raises:
            ValueError: If engine not found
        """
        engine_class = cls._policy_engines.get(name)
        if not engine_class:
            raise ValueError(
                f"Unknown policy engine: '{name}'. "
                f"Available: {cls.list_policy_engines()}"
            )
        return engine_class(**kwargs)

    @classmethod
    def get_scope_provider(cls, name: str, **kwargs: Any) -> ScopeProvider:
        """
        Get a scope provider by name.

        Raises:
            ValueError: If provider not found
        """
        provider_class = cls._scope_providers.get(name)
        if not provider_class:
            raise ValueError(
                f"Unknown scope provider: '{name}'. "
                f"Available: {cls.list_scope_providers()}"
            )
        return provider_class(**kwargs)

    @classmethod
    def get_condition_evaluator(cls, condition_type: str, **kwargs: Any) -> ConditionEvaluator:
        """
        Get a condition evaluator by type.

        Raises:
            ValueError: If condition type not found
        """
        evaluator_class = cls._condition_evaluators.get(condition_type)
        if not evaluator_class:
            raise ValueError(
                f"Unknown condition type: '{condition_type}'. "
                f"Available: {cls.list_conditions()}"
            )
        return evaluator_class(**kwargs)

    # ============================================================
    # INTROSPECTION
    # ============================================================

    @classmethod
    def list_policy_engines(cls) -> list[str]:
        return list(cls._policy_engines.keys())

    @classmethod
    def list_scope_providers(cls) -> list[str]:
        return list(cls._scope_providers.keys())

    @classmethod
    def list_conditions(cls) -> list[str]:
        return list(cls._condition_evaluators.keys())

    @classmethod
    def has_condition(cls, condition_type: str) -> bool:
        return condition_type in cls._condition_evaluators
