"""
Tests for Event Bus - Lifecycle event infrastructure.

This test suite covers:
1. Event dispatch order verification
2. Failure isolation between subscribers
3. Interceptor blocking behavior
4. Glob pattern matching
5. Priority tie-breaking
6. Concurrent dispatch (thread safety)
7. EventNotifier publishing lifecycle events
"""

import threading

import pytest

import modhub
from modhub.core.event_bus import EventBus, RegistrationError
from modhub.core.utils import UtilsError
from modhub.modules.events import EventNotifier, LifecycleEvent


class _Payload:
    def __init__(self, name):
        self.name = name


class TestEventDispatch:
    """Test consumer dispatch."""

    def test_event_dispatch_order(self):
        """Events should dispatch to all consumers in priority order."""
        execution_order = []

        @modhub.events.consumer('test.event', priority=10)
        def handler1(payload):
            execution_order.append(('handler1', payload))

        @modhub.events.consumer('test.event', priority=20)
        def handler2(payload):
            execution_order.append(('handler2', payload))

        @modhub.events.consumer('test.event', priority=5)
        def handler3(payload):
            execution_order.append(('handler3', payload))

        modhub.events.start('test.event', 'data')

        # Priority: 20, 10, 5
        assert execution_order == [
            ('handler2', 'data'),
            ('handler1', 'data'),
            ('handler3', 'data'),
        ]

    def test_event_handler_error_doesnt_stop_others(self):
        """Consumer errors should not stop other consumers."""
        execution_order = []

        @modhub.events.consumer('test.error', priority=30)
        def handler1(payload):
            execution_order.append('handler1')

        @modhub.events.consumer('test.error', priority=20)
        def handler2(payload):
            execution_order.append('handler2')
            raise ValueError("Handler error")

        @modhub.events.consumer('test.error', priority=10)
        def handler3(payload):
            execution_order.append('handler3')

        modhub.events.start('test.error', 'data')

        assert execution_order == ['handler1', 'handler2', 'handler3']

    def test_event_no_handlers(self):
        """Event with no handlers should not raise error."""
        modhub.events.start('test.no.handlers', 'data')

    def test_separate_buses_are_isolated(self):
        """A private bus does not see global subscribers."""
        seen = []

        @modhub.events.consumer('test.isolated')
        def handler(payload):
            seen.append(payload)

        EventBus().dispatch('test.isolated', 'private')
        assert seen == []


class TestInterceptor:
    """Test interceptor blocking behavior."""

    def test_interceptor_blocks_event(self):
        """Interceptor calling intercept() should block consumers."""
        consumed = []

        @modhub.events.interceptor('test.intercept', priority=100)
        def blocker(payload):
            modhub.utils.intercept()

        @modhub.events.consumer('test.intercept')
        def consumer(payload):
            consumed.append(payload)

        modhub.events.start('test.intercept', 'data')
        assert consumed == []

    def test_interceptor_without_intercept_allows_event(self):
        consumed = []

        @modhub.events.interceptor('test.allow', priority=100)
        def watcher(payload):
            pass

        @modhub.events.consumer('test.allow')
        def consumer(payload):
            consumed.append(payload)

        modhub.events.start('test.allow', 'data')
        assert consumed == ['data']

    def test_failing_interceptor_does_not_block(self):
        """A raising interceptor is logged and the event still reaches consumers."""
        consumed = []

        @modhub.events.interceptor('test.broken.interceptor')
        def broken(payload):
            raise RuntimeError("boom")

        @modhub.events.consumer('test.broken.interceptor')
        def consumer(payload):
            consumed.append(payload)

        modhub.events.start('test.broken.interceptor', 'data')
        assert consumed == ['data']

    def test_intercept_outside_interceptor_raises(self):
        with pytest.raises(UtilsError, match="outside of interceptor context"):
            modhub.utils.intercept()


class TestPatternMatching:
    """Test glob pattern matching for event IDs."""

    def test_consumer_re_matches_one_segment(self):
        """'module.*' matches lifecycle events but not deeper ids."""
        execution_log = []

        @modhub.events.consumer_re('module.*', priority=10)
        def audit(src, payload):
            execution_log.append(src)

        modhub.events.start('module.install', 'a')
        modhub.events.start('module.uninstall', 'b')
        modhub.events.start('module.install.extra', 'c')
        modhub.events.start('theme.install', 'd')

        assert execution_log == ['module.install', 'module.uninstall']

    def test_consumer_re_requires_src_parameter(self):
        """Pattern-based consumers must have 'src' as first parameter."""
        with pytest.raises(RegistrationError, match="must have 'src' as first parameter"):
            @modhub.events.consumer_re('module.*', priority=10)
            def bad_handler(payload):
                pass

    def test_interceptor_re_pattern(self):
        """Pattern-based interceptors can veto by payload."""
        consumed = []

        @modhub.events.interceptor_re('module.*', priority=100)
        def keep_audit(src, payload):
            if payload.name == 'auditlog':
                modhub.utils.intercept()

        @modhub.events.consumer_re('module.*')
        def consumer(src, payload):
            consumed.append(payload.name)

        modhub.events.start('module.uninstall', _Payload('auditlog'))
        modhub.events.start('module.uninstall', _Payload('mailalert'))

        assert consumed == ['mailalert']

    def test_pattern_exact_and_pattern_both_match(self):
        """Both exact and pattern handlers should execute."""
        execution_log = []

        @modhub.events.consumer('module.enable', priority=20)
        def exact_handler(payload):
            execution_log.append('exact')

        @modhub.events.consumer_re('module.*', priority=10)
        def pattern_handler(src, payload):
            execution_log.append('pattern')

        modhub.events.start('module.enable', 'data')

        assert execution_log == ['exact', 'pattern']


class TestPriorityTieBreaking:
    """Test priority tie-breaking with registration order."""

    def test_same_priority_uses_registration_order(self):
        execution_order = []

        @modhub.events.consumer('test.tiebreak', priority=10)
        def handler1(payload):
            execution_order.append('handler1')

        @modhub.events.consumer('test.tiebreak', priority=10)
        def handler2(payload):
            execution_order.append('handler2')

        @modhub.events.consumer('test.tiebreak', priority=10)
        def handler3(payload):
            execution_order.append('handler3')

        modhub.events.start('test.tiebreak', 'data')

        assert execution_order == ['handler1', 'handler2', 'handler3']


class TestConcurrentDispatch:
    """Test concurrent event dispatch (thread safety)."""

    def test_concurrent_interceptor_execution(self):
        """Interceptor state must not leak between concurrent dispatches."""
        intercept_counts = {'count': 0, 'lock': threading.Lock()}
        consumer_counts = {'count': 0, 'lock': threading.Lock()}

        @modhub.events.interceptor('test.concurrent', priority=100)
        def interceptor(payload):
            with intercept_counts['lock']:
                intercept_counts['count'] += 1
            if payload == 'block':
                modhub.utils.intercept()

        @modhub.events.consumer('test.concurrent', priority=10)
        def consumer(payload):
            with consumer_counts['lock']:
                consumer_counts['count'] += 1

        threads = []
        for i in range(10):
            data = 'block' if i < 5 else 'allow'
            thread = threading.Thread(
                target=lambda d=data: modhub.events.start('test.concurrent', d)
            )
            threads.append(thread)
            thread.start()

        for thread in threads:
            thread.join()

        assert intercept_counts['count'] == 10
        assert consumer_counts['count'] == 5


class TestEventNotifier:
    """Test lifecycle event publishing."""

    def test_publish_uses_event_id(self):
        """The notifier dispatches the event value with the descriptor as payload."""
        bus = EventBus()
        received = []
        bus.register_consumer('module.install', lambda descriptor: received.append(descriptor.name))

        EventNotifier(bus).publish(LifecycleEvent.INSTALL, _Payload('mailalert'))

        assert received == ['mailalert']

    def test_default_bus_is_global(self):
        received = []

        @modhub.events.consumer('module.disable')
        def on_disable(descriptor):
            received.append(descriptor.name)

        EventNotifier().publish(LifecycleEvent.DISABLE, _Payload('statsdata'))

        assert received == ['statsdata']
