"""VibeCoordinator 통합 테스트 (인메모리 SQLite + EventBus + 모듈)"""

import pytest

from npc_vibes.core.connection.models import ConnectionLevel
from npc_vibes.core.disposition.models import DispositionType
from npc_vibes.core.entities import EntityRole, TokenView, UserInfo
from npc_vibes.core.errors import InvalidTransitionError, PrivilegeError, StoreWriteError
from npc_vibes.core.event_types import EventTypes
from npc_vibes.services.coordination_service import HISTORY_LIMIT


def _pc(**overrides):
    data = dict(
        token_id="t-aria",
        actor_id="aria",
        name="Aria",
        role=EntityRole.PC,
        scene_id="s1",
        owner_ids=("player1",),
    )
    data.update(overrides)
    return TokenView(**data)


def _npc(**overrides):
    data = dict(
        token_id="t-bram",
        actor_id="bram",
        name="Bram",
        role=EntityRole.NPC,
        scene_id="s1",
        x=100.0,
    )
    data.update(overrides)
    return TokenView(**data)


def _place(runtime, *tokens):
    for token in tokens:
        runtime.coordinator.register_token(token)


def _rng(runtime):
    return runtime.generator._rng


class BrokenGenerator:
    def roll(self, source, target):
        raise RuntimeError("dice lost")


# ── 첫 대면 ──────────────────────────────────────────────────


class TestFirstSight:
    def test_rolls_both_directions(self, make_runtime):
        """Aria(1) → repulsed, Bram(20) → awestruck"""
        runtime = make_runtime(rolls=(1, 20))
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)

        outcomes = runtime.coordinator.on_visibility_event(pc, npc)

        assert [o.disposition for o in outcomes] == [
            DispositionType.REPULSED,
            DispositionType.AWESTRUCK,
        ]
        store = runtime.store
        assert store.get_disposition("aria", "bram", EntityRole.PC).disposition is (
            DispositionType.REPULSED
        )
        assert store.get_disposition("bram", "aria", EntityRole.NPC).disposition is (
            DispositionType.AWESTRUCK
        )
        assert runtime.coordinator.processed_pairs == ["aria-bram"]
        assert "bram" in store.npc_registry()

    def test_notifies_gms(self, make_runtime):
        runtime = make_runtime(rolls=(1, 20))
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)
        runtime.coordinator.on_visibility_event(pc, npc)

        kinds = [m.kind for m in runtime.messenger.sent]
        assert kinds == ["first_sight", "disposition", "disposition"]
        assert all(m.recipients == ("gm",) for m in runtime.messenger.sent)
        assert runtime.messenger.sent[1].title == "Repulsed Vibe"
        assert runtime.messenger.sent[1].roll == 1

    def test_none_rolls_are_quiet(self, make_runtime):
        runtime = make_runtime(rolls=(10,))
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)
        outcomes = runtime.coordinator.on_visibility_event(pc, npc)

        assert len(outcomes) == 2
        assert [m.kind for m in runtime.messenger.sent] == ["first_sight"]
        assert runtime.presenter.auras == []

    def test_retrigger_rolls_nothing(self, make_runtime):
        runtime = make_runtime(rolls=(1, 20))
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)
        runtime.coordinator.on_visibility_event(pc, npc)

        assert runtime.coordinator.on_visibility_event(pc, npc) == []
        runtime.coordinator.clear_session()
        assert runtime.coordinator.on_visibility_event(pc, npc) == []
        assert _rng(runtime).calls == 2

    def test_idempotent_after_restart(self, make_runtime):
        """재시작 후에도 같은 쌍은 다시 굴리지 않는다"""
        first = make_runtime(rolls=(18, 19), user_id="gm")
        pc, npc = _pc(), _npc()
        _place(first, pc, npc)
        first.coordinator.on_visibility_event(pc, npc)
        first.shutdown()

        second = make_runtime(
            rolls=(1,),
            user_id="gm-restarted",
            users=[UserInfo(user_id="gm-restarted", is_gm=True)],
        )
        _place(second, pc, npc)
        assert second.coordinator.on_visibility_event(pc, npc) == []
        assert _rng(second).calls == 0
        record = second.store.get_disposition("aria", "bram", EntityRole.PC)
        assert record.disposition is DispositionType.CURIOUS

    def test_existing_records_only_update_visuals(self, make_runtime):
        runtime = make_runtime(rolls=(1,))
        store = runtime.store
        store.set_disposition("aria", "bram", DispositionType.AWESTRUCK, EntityRole.PC)
        store.set_disposition("bram", "aria", DispositionType.NONE, EntityRole.NPC)
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)

        assert runtime.coordinator.on_visibility_event(pc, npc) == []
        assert not runtime.coordinator.is_processed("aria", "bram")
        assert len(runtime.presenter.auras) == 1
        assert runtime.messenger.sent == []

    def test_only_missing_direction_rolled(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        runtime.store.set_disposition(
            "aria", "bram", DispositionType.CURIOUS, EntityRole.PC
        )
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)

        outcomes = runtime.coordinator.on_visibility_event(pc, npc)
        assert len(outcomes) == 1
        assert outcomes[0].source_role is EntityRole.NPC
        pc_record = runtime.store.get_disposition("aria", "bram", EntityRole.PC)
        assert pc_record.disposition is DispositionType.CURIOUS

    def test_out_of_sight(self, make_runtime):
        runtime = make_runtime(rolls=(1,))
        pc, npc = _pc(), _npc(x=1000.0)
        _place(runtime, pc, npc)
        assert runtime.coordinator.on_visibility_event(pc, npc) == []
        assert runtime.store.all_dispositions() == []
        assert runtime.coordinator.processed_pairs == []

    def test_one_way_sight_is_enough(self, make_runtime):
        runtime = make_runtime(rolls=(10,))
        pc, npc = _pc(sight_range=10.0), _npc()
        _place(runtime, pc, npc)
        assert len(runtime.coordinator.on_visibility_event(pc, npc)) == 2

    def test_generator_failure_skips_direction(self, make_runtime):
        runtime = make_runtime()
        runtime.coordinator._generator = BrokenGenerator()
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)

        assert runtime.coordinator.on_visibility_event(pc, npc) == []
        assert runtime.store.all_dispositions() == []

    def test_actorless_token_ignored(self, make_runtime):
        runtime = make_runtime(rolls=(1,))
        pc, npc = _pc(), _npc(actor_id=None)
        assert runtime.coordinator.on_visibility_event(pc, npc) == []

    def test_require_humanoid(self, make_runtime):
        runtime = make_runtime(rolls=(1,))
        runtime.options.update(require_humanoid=True)
        pc, beast = _pc(traits=("humanoid",)), _npc()
        _place(runtime, pc, beast)
        assert runtime.coordinator.on_visibility_event(pc, beast) == []

        person = _npc(token_id="t-cora", actor_id="cora", traits=("humanoid",))
        _place(runtime, person)
        assert len(runtime.coordinator.on_visibility_event(pc, person)) == 2

    def test_notifications_disabled(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        runtime.options.update(enable_notifications=False)
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)
        runtime.coordinator.on_visibility_event(pc, npc)
        assert runtime.messenger.sent == []

    def test_emits_rolled_events(self, make_runtime):
        runtime = make_runtime(rolls=(1, 20))
        seen = []
        runtime.event_bus.subscribe(
            EventTypes.DISPOSITION_ROLLED, lambda e: seen.append(e.dedupe_key)
        )
        pc, npc = _pc(), _npc()
        _place(runtime, pc, npc)
        runtime.coordinator.on_visibility_event(pc, npc)
        assert seen == [repr(("aria", "bram")), repr(("bram", "aria"))]

    def test_dashed_ids_do_not_collide(self, make_runtime):
        """("a-b", "c")와 ("a", "b-c")는 서로 다른 쌍"""
        runtime = make_runtime(rolls=(10,))
        first_pc = _pc(token_id="t-ab", actor_id="a-b")
        first_npc = _npc(token_id="t-c", actor_id="c")
        second_pc = _pc(token_id="t-a", actor_id="a")
        second_npc = _npc(token_id="t-bc", actor_id="b-c")
        _place(runtime, first_pc, first_npc, second_pc, second_npc)

        first = runtime.coordinator.on_visibility_event(first_pc, first_npc)
        second = runtime.coordinator.on_visibility_event(second_pc, second_npc)

        assert len(first) == 2
        assert len(second) == 2
        assert runtime.coordinator.is_processed("a-b", "c")
        assert runtime.coordinator.is_processed("a", "b-c")
        assert not runtime.coordinator.is_processed("a-b", "b-c")
        assert len(runtime.coordinator.processed_pairs) == 2


class TestChecks:
    def test_check_token_evaluates_counterparts(self, make_runtime):
        runtime = make_runtime(rolls=(10,))
        pc = _pc()
        _place(runtime, pc, _npc(), _npc(token_id="t-cora", actor_id="cora", x=50.0))
        outcomes = runtime.coordinator.check_token(pc)
        assert len(outcomes) == 4
        assert runtime.coordinator.processed_pairs == ["aria-bram", "aria-cora"]

    def test_refresh_all_clears_processed(self, make_runtime):
        runtime = make_runtime(rolls=(10,))
        _place(runtime, _pc(), _npc())
        runtime.coordinator.refresh_all()
        assert runtime.coordinator.processed_pairs == ["aria-bram"]
        assert runtime.coordinator.refresh_all() == []
        assert _rng(runtime).calls == 2

    def test_token_removed(self, make_runtime):
        runtime = make_runtime()
        _place(runtime, _pc(), _npc())
        runtime.coordinator.refresh_all()
        removed = runtime.coordinator.on_token_removed("t-bram")
        assert removed.actor_id == "bram"
        assert runtime.oracle.cache_size == 0


class TestRoller:
    def test_player_waits_for_gm(self, make_runtime):
        player = make_runtime(rolls=(1,), user_id="player1", is_gm=False)
        pc, npc = _pc(), _npc()
        _place(player, pc, npc)

        assert player.coordinator.on_visibility_event(pc, npc) == []
        assert _rng(player).calls == 0
        assert player.store.all_dispositions() == []
        assert not player.coordinator.is_processed("aria", "bram")
        assert not player.store.has_pending_writes

    def test_lowest_active_gm_rolls(self, make_runtime):
        users = [
            UserInfo(user_id="gm", is_gm=True),
            UserInfo(user_id="gm2", is_gm=True),
        ]
        first = make_runtime(users=users)
        second = make_runtime(user_id="gm2", users=users)
        assert first.coordinator.is_roller
        assert not second.coordinator.is_roller

    def test_next_gm_takes_over(self, make_runtime):
        users = [
            UserInfo(user_id="gm", is_gm=True, active=False),
            UserInfo(user_id="gm2", is_gm=True),
        ]
        runtime = make_runtime(user_id="gm2", users=users)
        assert runtime.coordinator.is_roller

    def test_second_gm_does_not_roll(self, make_runtime):
        users = [
            UserInfo(user_id="gm", is_gm=True),
            UserInfo(user_id="gm2", is_gm=True),
        ]
        second = make_runtime(rolls=(1,), user_id="gm2", users=users)
        pc, npc = _pc(), _npc()
        _place(second, pc, npc)

        assert second.coordinator.on_visibility_event(pc, npc) == []
        assert _rng(second).calls == 0
        assert second.messenger.sent == []


# ── Connection ───────────────────────────────────────────────


class TestConnections:
    def test_one_step_up(self, runtime):
        record = runtime.coordinator.set_connection_level(
            "aria", "bram", ConnectionLevel.ACQUAINTANCE, actor_id="player1"
        )
        assert record.level is ConnectionLevel.ACQUAINTANCE
        message = runtime.messenger.sent[-1]
        assert message.kind == "connection"
        assert message.recipients == ("gm", "player1")

    def test_skip_rejected(self, runtime):
        with pytest.raises(InvalidTransitionError):
            runtime.coordinator.set_connection_level(
                "aria", "bram", ConnectionLevel.FRIEND
            )
        assert runtime.coordinator.get_connection("aria", "bram") is (
            ConnectionLevel.STRANGER
        )

    def test_drop_allowed(self, runtime):
        coordinator = runtime.coordinator
        coordinator.set_connection_level("aria", "bram", ConnectionLevel.ACQUAINTANCE)
        coordinator.set_connection_level("aria", "bram", ConnectionLevel.FRIEND)
        coordinator.set_connection_level("aria", "bram", ConnectionLevel.STRANGER)
        assert coordinator.get_connection("aria", "bram") is ConnectionLevel.STRANGER

    def test_same_level_no_message(self, runtime):
        runtime.coordinator.set_connection_level(
            "aria", "bram", ConnectionLevel.STRANGER
        )
        assert runtime.messenger.sent == []

    def test_interaction_suggestion(self, runtime):
        runtime.store.set_disposition(
            "aria", "bram", DispositionType.CURIOUS, EntityRole.PC
        )
        first = runtime.coordinator.record_interaction("aria", "bram", "conversation")
        assert not first.has_suggestion

        second = runtime.coordinator.record_interaction("aria", "bram", "trade")
        assert second.has_suggestion
        assert second.suggested is ConnectionLevel.ACQUAINTANCE
        assert second.to_dict()["interactionCount"] == 2
        assert runtime.messenger.sent[-1].kind == "suggestion"
        # 제안은 적용되지 않는다
        assert runtime.coordinator.get_connection("aria", "bram") is (
            ConnectionLevel.STRANGER
        )

    def test_player_cannot_change_level(self, make_runtime):
        player = make_runtime(user_id="player1", is_gm=False)
        with pytest.raises(PrivilegeError):
            player.coordinator.set_connection_level(
                "aria", "bram", ConnectionLevel.ACQUAINTANCE
            )
        assert player.coordinator.get_connection("aria", "bram") is (
            ConnectionLevel.STRANGER
        )
        assert player.messenger.sent == []

    def test_player_cannot_record_interaction(self, make_runtime):
        player = make_runtime(user_id="player1", is_gm=False)
        with pytest.raises(PrivilegeError):
            player.coordinator.record_interaction("aria", "bram", "conversation")
        assert player.store.get_interactions("aria", "bram") == []

    def test_connection_details(self, runtime):
        runtime.store.set_disposition(
            "aria", "bram", DispositionType.AWESTRUCK, EntityRole.PC
        )
        runtime.coordinator.record_interaction("aria", "bram", "conversation", "Hi")
        details = runtime.coordinator.connection_details("aria", "bram")
        assert details["level"] == "Stranger"
        assert details["mechanicalEffects"] == []
        assert "This character inspires you." in details["advice"]
        assert details["interactions"][0]["description"] == "Hi"


# ── 일괄 명령 ────────────────────────────────────────────────


class TestBulkCommands:
    def test_reset_requires_gm(self, make_runtime):
        player = make_runtime(user_id="player1", is_gm=False)
        with pytest.raises(PrivilegeError):
            player.coordinator.reset_all()

    def test_reset_clears_session_and_auras(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        _place(runtime, _pc(), _npc())
        runtime.command(runtime.coordinator.refresh_all)
        assert runtime.presenter.auras

        runtime.command(runtime.coordinator.reset_all)
        assert runtime.coordinator.processed_pairs == []
        assert runtime.presenter.auras == []
        assert runtime.store.all_dispositions() == []

    def test_import_redraws_auras(self, make_runtime):
        runtime = make_runtime()
        _place(runtime, _pc(), _npc())
        snapshot = {
            "pcDispositions": {"aria": {"bram": {"dispositionType": "awestruck"}}},
            "npcDispositions": {},
            "connections": {},
            "npcRegistry": {},
        }
        runtime.command(runtime.coordinator.import_snapshot, snapshot)
        assert [a.color for a in runtime.presenter.auras] == ["#44ff44"]

    def test_cleanup_uses_registry(self, runtime):
        runtime.store.set_disposition(
            "aria", "ghost", DispositionType.CURIOUS, EntityRole.PC
        )
        _place(runtime, _pc())
        assert runtime.coordinator.cleanup_orphans() == 1

    def test_cleanup_with_explicit_ids(self, runtime):
        runtime.store.set_disposition(
            "aria", "bram", DispositionType.CURIOUS, EntityRole.PC
        )
        assert runtime.coordinator.cleanup_orphans(["aria", "bram"]) == 0


# ── 조회 / 에러 보고 ─────────────────────────────────────────


class TestViews:
    def test_vibe_book_gm_view(self, make_runtime):
        runtime = make_runtime(rolls=(1, 20))
        _place(runtime, _pc(), _npc())
        runtime.coordinator.refresh_all()

        book = runtime.coordinator.vibe_book()
        assert book["hasVibes"]
        assert book["pcVibes"][0]["dispositionType"] == "repulsed"
        assert book["pcVibes"][0]["npcName"] == "Bram"
        assert book["npcVibes"][0]["dispositionType"] == "awestruck"

    def test_vibe_book_pc_view_hides_npc_side(self, make_runtime):
        runtime = make_runtime(rolls=(10, 20))
        _place(runtime, _pc(), _npc())
        runtime.coordinator.refresh_all()
        book = runtime.coordinator.vibe_book("aria")
        assert book == {"pcVibes": [], "npcVibes": [], "hasVibes": False}

    def test_debug_info(self, make_runtime):
        runtime = make_runtime(rolls=(1, 20))
        _place(runtime, _pc(), _npc())
        runtime.coordinator.refresh_all()

        info = runtime.coordinator.debug_info()
        assert info["totalChecks"] == 1
        assert info["stats"]["total"] == 2
        assert info["stats"]["totalVibes"] == 2
        assert info["pendingWrites"] is True
        assert info["visuals"]["activeAuras"] == 1

        runtime.coordinator.clear_debug()
        assert runtime.coordinator.debug_info()["totalChecks"] == 0

    def test_history_is_capped(self, make_runtime):
        runtime = make_runtime(rolls=(10,))
        runtime.options.update(enable_notifications=False)
        pc = _pc()
        last = HISTORY_LIMIT + 4
        for i in range(last + 1):
            npc = _npc(token_id=f"t-npc{i}", actor_id=f"npc{i}")
            runtime.coordinator.on_visibility_event(pc, npc)

        info = runtime.coordinator.debug_info()
        assert info["totalChecks"] == HISTORY_LIMIT
        assert info["recentChecks"][-1]["npcId"] == f"npc{last}"
        assert len(info["recentChecks"]) == 10

    def test_store_error_reported_to_gm(self, runtime):
        runtime.coordinator.report_store_error(StoreWriteError("disk full"))
        message = runtime.messenger.sent[-1]
        assert message.kind == "error"
        assert "disk full" in message.body

    def test_store_error_silent_for_players(self, make_runtime):
        player = make_runtime(user_id="player1", is_gm=False)
        player.coordinator.report_store_error(StoreWriteError("disk full"))
        assert player.messenger.sent == []
