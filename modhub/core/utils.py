"""
Utils Module - Control-flow helpers for event subscribers.

This module provides:
- intercept(): Block an event from reaching its consumers

Context is tracked with contextvars so nested or concurrent dispatches
never see each other's state.
"""

from contextvars import ContextVar


class UtilsError(Exception):
    """Base exception for utils-related errors."""

    pass


class InterceptorContext:
    """Context for interceptor execution."""

    def __init__(self):
        self.should_intercept = False


_interceptor_context: ContextVar[InterceptorContext | None] = ContextVar(
    "interceptor_context", default=None
)


def intercept() -> None:
    """
    Block an event from reaching any consumers.

    Must be called from within an interceptor. If not called, the event
    proceeds normally.

    Raises:
        UtilsError: If called outside of an interceptor context

    Example:
        @modhub.events.interceptor('module.uninstall')
        def keep_audit_module(descriptor):
            if descriptor.name == 'auditlog':
                modhub.utils.intercept()
    """
    ctx = _interceptor_context.get()
    if ctx is None:
        raise UtilsError(
            "intercept() called outside of interceptor context. "
            "This function can only be called from within an interceptor."
        )
    ctx.should_intercept = True


def _set_interceptor_context(ctx: InterceptorContext | None) -> object:
    """Set the current interceptor context and return the reset token (internal use only)."""
    return _interceptor_context.set(ctx)


def _reset_interceptor_context(token: object) -> None:
    """Restore the interceptor context that was active before (internal use only)."""
    _interceptor_context.reset(token)
