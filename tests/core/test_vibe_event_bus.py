"""EventBus 테스트"""

from npc_vibes.core.event_bus import MAX_DEPTH, EventBus, VibeEvent


class TestSubscribeEmit:
    def test_basic_emit(self):
        bus = EventBus()
        received = []
        bus.subscribe("token_created", lambda e: received.append(e))
        bus.emit(VibeEvent(event_type="token_created", data={"id": "t1"}, source="h"))
        assert len(received) == 1
        assert received[0].data["id"] == "t1"

    def test_handlers_called_in_order(self):
        bus = EventBus()
        results = []
        bus.subscribe("evt", lambda e: results.append("a"))
        bus.subscribe("evt", lambda e: results.append("b"))
        bus.emit(VibeEvent(event_type="evt", data={}, source="test"))
        assert results == ["a", "b"]

    def test_no_handlers(self):
        """구독자 없는 이벤트 발행 — 에러 없이 무시"""
        bus = EventBus()
        bus.emit(VibeEvent(event_type="no_one_listens", data={}, source="test"))

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        handler = lambda e: received.append(e)  # noqa: E731
        bus.subscribe("evt", handler)
        bus.unsubscribe("evt", handler)
        bus.emit(VibeEvent(event_type="evt", data={}, source="test"))
        assert received == []
        assert bus.handler_count == 0

    def test_unsubscribe_nonexistent(self):
        """미등록 핸들러 해제 — 경고만, 에러 없음"""
        bus = EventBus()
        bus.subscribe("evt", lambda e: None)
        bus.unsubscribe("evt", lambda e: None)
        assert bus.handler_count == 1


class TestDepthLimit:
    def test_max_depth_prevents_infinite_loop(self):
        bus = EventBus()
        call_count = 0

        def recursive_handler(event: VibeEvent):
            nonlocal call_count
            call_count += 1
            bus.emit(
                VibeEvent(event_type="chain", data={}, source=f"handler_{call_count}")
            )

        bus.subscribe("chain", recursive_handler)
        bus.emit(VibeEvent(event_type="chain", data={}, source="origin"))
        assert call_count == MAX_DEPTH

    def test_depth_restored_after_emit(self):
        bus = EventBus()
        bus.subscribe("evt", lambda e: None)
        bus.emit(VibeEvent(event_type="evt", data={}, source="a"))
        assert bus._current_depth == 0


class TestChainDedupe:
    def test_same_key_blocked_within_chain(self):
        bus = EventBus()
        received = []
        bus.subscribe("evt", lambda e: received.append(e))
        bus.emit(VibeEvent(event_type="evt", data={}, source="s", dedupe_key="k"))
        bus.emit(VibeEvent(event_type="evt", data={}, source="s", dedupe_key="k"))
        assert len(received) == 1

    def test_different_dedupe_keys_pass(self):
        """같은 source·유형이라도 대상이 다르면 모두 전달"""
        bus = EventBus()
        received = []
        bus.subscribe("evt", lambda e: received.append(e.dedupe_key))
        bus.emit(VibeEvent(event_type="evt", data={}, source="s", dedupe_key="a->b"))
        bus.emit(VibeEvent(event_type="evt", data={}, source="s", dedupe_key="b->a"))
        assert received == ["a->b", "b->a"]

    def test_reset_chain_allows_reemit(self):
        bus = EventBus()
        received = []
        bus.subscribe("evt", lambda e: received.append(e))
        bus.emit(VibeEvent(event_type="evt", data={}, source="s"))
        bus.reset_chain()
        bus.emit(VibeEvent(event_type="evt", data={}, source="s"))
        assert len(received) == 2


class TestHandlerErrors:
    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        results = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("evt", broken)
        bus.subscribe("evt", lambda e: results.append("ok"))
        bus.emit(VibeEvent(event_type="evt", data={}, source="s"))
        assert results == ["ok"]

    def test_clear(self):
        bus = EventBus()
        bus.subscribe("a", lambda e: None)
        bus.subscribe("b", lambda e: None)
        bus.clear()
        assert bus.handler_count == 0
