"""VibesModule / VisualsModule 테스트 — 호스트 이벤트 → 코디네이터"""

from npc_vibes.core.disposition.models import DispositionType
from npc_vibes.core.entities import EntityRole, TokenView
from npc_vibes.core.event_bus import VibeEvent
from npc_vibes.core.event_types import EventTypes


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
        x=1000.0,
    )
    data.update(overrides)
    return TokenView(**data)


def _created(runtime, token):
    runtime.modules.dispatch(
        VibeEvent(
            event_type=EventTypes.TOKEN_CREATED,
            data={"token": token},
            source="host",
            dedupe_key=token.token_id,
        )
    )


def _updated(runtime, token_id, **changes):
    previous, current = runtime.registry.update_token(token_id, changes)
    runtime.modules.dispatch(
        VibeEvent(
            event_type=EventTypes.TOKEN_UPDATED,
            data={"token": current, "previous": previous, "changes": sorted(changes)},
            source="host",
            dedupe_key=token_id,
        )
    )


class TestRegistration:
    def test_both_modules_enabled(self, runtime):
        assert runtime.modules.is_enabled("vibes")
        assert runtime.modules.is_enabled("visuals")
        assert runtime.coordinator.presenter is runtime.presenter

    def test_actions_for_gm(self, runtime):
        names = [a.name for a in runtime.modules.get_all_actions(runtime.context())]
        assert names == [
            "recheck",
            "vibe_book",
            "export",
            "clear_session",
            "import",
            "reset",
            "cleanup",
            "refresh_visuals",
        ]

    def test_actions_for_player(self, make_runtime):
        player = make_runtime(user_id="player1", is_gm=False)
        actions = player.modules.get_all_actions(player.context())
        assert not any(a.gm_only for a in actions)
        assert "reset" not in [a.name for a in actions]

    def test_no_aura_action_when_indicators_off(self, runtime):
        runtime.options.update(enable_visual_indicators=False)
        names = [a.name for a in runtime.modules.get_all_actions(runtime.context())]
        assert "refresh_visuals" not in names


class TestTokenLifecycle:
    def test_created_token_is_checked(self, make_runtime):
        runtime = make_runtime(rolls=(18, 10))
        _created(runtime, _pc())
        _created(runtime, _npc(x=100.0))
        record = runtime.store.get_disposition("aria", "bram", EntityRole.PC)
        assert record.disposition is DispositionType.CURIOUS
        assert len(runtime.presenter.auras) == 1

    def test_move_into_range_triggers_roll(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        _created(runtime, _pc())
        _created(runtime, _npc())
        assert runtime.store.all_dispositions() == []

        _updated(runtime, "t-bram", x=120.0)
        assert len(runtime.store.all_dispositions()) == 2
        assert runtime.coordinator.processed_pairs == ["aria-bram"]

    def test_cosmetic_change_ignored(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        _created(runtime, _pc())
        _created(runtime, _npc())
        runtime.registry.upsert_token(_npc(x=100.0, name="Bram"))
        _updated(runtime, "t-bram", name="Bram the Smith")
        assert runtime.store.all_dispositions() == []

    def test_move_repositions_aura(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        _created(runtime, _pc())
        _created(runtime, _npc(x=100.0))
        before = runtime.presenter.auras[0].left

        _updated(runtime, "t-bram", x=150.0)
        assert runtime.presenter.auras[0].left == before + 50.0

    def test_deleted_token_drops_aura(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        _created(runtime, _pc())
        _created(runtime, _npc(x=100.0))
        runtime.modules.dispatch(
            VibeEvent(
                event_type=EventTypes.TOKEN_DELETED,
                data={"token_id": "t-bram"},
                source="host",
            )
        )
        assert runtime.registry.get_token("t-bram") is None
        assert runtime.presenter.auras == []

    def test_sight_refresh(self, make_runtime):
        runtime = make_runtime(rolls=(10,))
        runtime.registry.upsert_token(_pc())
        runtime.registry.upsert_token(_npc(x=100.0))
        runtime.modules.dispatch(
            VibeEvent(event_type=EventTypes.SIGHT_REFRESH, data={}, source="host")
        )
        assert runtime.coordinator.processed_pairs == ["aria-bram"]


class TestSceneReady:
    def test_registers_and_rechecks(self, make_runtime):
        runtime = make_runtime(rolls=(1, 20))
        runtime.registry.upsert_token(_pc())
        runtime.registry.upsert_token(_npc(x=100.0))

        runtime.modules.process_scene_ready("s1", runtime.context("s1"))

        assert runtime.registry.is_ready("s1")
        assert "bram" in runtime.store.npc_registry()
        assert len(runtime.store.all_dispositions()) == 2
        assert [a.disposition for a in runtime.presenter.auras] == [
            DispositionType.REPULSED
        ]


class TestVisualsToggle:
    def test_disable_visuals_clears_auras(self, make_runtime):
        runtime = make_runtime(rolls=(20,))
        _created(runtime, _pc())
        _created(runtime, _npc(x=100.0))
        assert runtime.presenter.auras

        runtime.modules.disable("visuals")
        assert runtime.presenter.auras == []
        assert runtime.coordinator.presenter is None

    def test_disable_vibes_cascades(self, runtime):
        runtime.modules.disable("vibes")
        assert not runtime.modules.is_enabled("visuals")
        _created(runtime, _pc())
        assert runtime.registry.get_token("t-aria") is None
