import unittest

from ecolobby.services.membership_service import (
    DEFAULT_PLAYER_STATE,
    PLAYER_COLORS,
    JoinError,
    JoinErrorReason,
    MembershipService,
)
from ecolobby.services.session_registry import SessionRegistry
from fakes import FakeClock


class MembershipServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.registry = SessionRegistry(max_players=6, id_length=6, clock=self.clock)
        self.membership = MembershipService(clock=self.clock)
        self.session = self.registry.create()

    def assertJoinRejected(self, name: object, sid: str, reason: JoinErrorReason) -> None:
        before = dict(self.session.players)
        with self.assertRaises(JoinError) as ctx:
            self.membership.join(self.session, name, sid)
        self.assertEqual(ctx.exception.reason, reason)
        self.assertEqual(self.session.players, before)

    def test_join_trims_name_and_assigns_first_color(self) -> None:
        player = self.membership.join(self.session, "  Alice ", "sid-a")

        self.assertEqual(player.id, "sid-a")
        self.assertEqual(player.name, "Alice")
        self.assertEqual(player.color, PLAYER_COLORS[0])
        self.assertEqual(player.state, DEFAULT_PLAYER_STATE)
        self.assertIs(self.session.players["sid-a"], player)
        self.assertIsNone(self.session.empty_since)

    def test_players_get_independent_default_state(self) -> None:
        alice = self.membership.join(self.session, "Alice", "sid-a")
        bob = self.membership.join(self.session, "Bob", "sid-b")

        alice.state["buildings"].append("factory")

        self.assertEqual(bob.state["buildings"], [])
        self.assertEqual(DEFAULT_PLAYER_STATE["buildings"], [])

    def test_colors_follow_join_order(self) -> None:
        colors = [
            self.membership.join(self.session, f"Player{index}", f"sid-{index}").color
            for index in range(6)
        ]
        self.assertEqual(colors, list(PLAYER_COLORS))

    def test_short_names_are_rejected_without_mutation(self) -> None:
        for name in ("", " ", "A", "  B  ", None, 42):
            self.assertJoinRejected(name, "sid-x", JoinErrorReason.NAME_TOO_SHORT)

    def test_duplicate_trimmed_name_is_rejected(self) -> None:
        self.membership.join(self.session, "Alice", "sid-a")

        self.assertJoinRejected(" Alice  ", "sid-b", JoinErrorReason.NAME_TAKEN)

    def test_name_match_is_case_sensitive(self) -> None:
        self.membership.join(self.session, "Alice", "sid-a")

        player = self.membership.join(self.session, "alice", "sid-b")

        self.assertEqual(player.name, "alice")
        self.assertEqual(self.session.player_count, 2)

    def test_name_uniqueness_is_scoped_per_session(self) -> None:
        other = self.registry.create()
        self.membership.join(self.session, "Alice", "sid-a")

        player = self.membership.join(other, "Alice", "sid-b")

        self.assertEqual(player.name, "Alice")

    def test_full_session_is_rejected(self) -> None:
        for index in range(6):
            self.membership.join(self.session, f"Player{index}", f"sid-{index}")

        self.assertJoinRejected("Seventh", "sid-7", JoinErrorReason.SESSION_FULL)
        self.assertEqual(self.session.player_count, self.session.max_players)

    def test_name_checks_run_before_capacity(self) -> None:
        for index in range(6):
            self.membership.join(self.session, f"Player{index}", f"sid-{index}")

        self.assertJoinRejected("Player0", "sid-7", JoinErrorReason.NAME_TAKEN)
        self.assertJoinRejected("x", "sid-7", JoinErrorReason.NAME_TOO_SHORT)

    def test_check_join_ignores_the_connections_own_record(self) -> None:
        for index in range(6):
            self.membership.join(self.session, f"Player{index}", f"sid-{index}")
        before = dict(self.session.players)

        self.assertEqual(self.membership.check_join(self.session, " Player0 ", "sid-0"), "Player0")
        self.assertEqual(self.membership.check_join(self.session, "Renamed", "sid-0"), "Renamed")
        with self.assertRaises(JoinError) as ctx:
            self.membership.check_join(self.session, "Player1", "sid-0")
        self.assertEqual(ctx.exception.reason, JoinErrorReason.NAME_TAKEN)
        with self.assertRaises(JoinError) as ctx:
            self.membership.check_join(self.session, "Renamed", "sid-7")
        self.assertEqual(ctx.exception.reason, JoinErrorReason.SESSION_FULL)
        self.assertEqual(self.session.players, before)

    def test_leave_removes_player_and_stamps_empty_time(self) -> None:
        self.membership.join(self.session, "Alice", "sid-a")
        self.clock.advance(minutes=10)

        player = self.membership.leave(self.session, "sid-a")

        self.assertEqual(player.name, "Alice")
        self.assertTrue(self.session.is_empty)
        self.assertEqual(self.session.empty_since, self.clock.now)

    def test_leave_unknown_connection_is_tolerated(self) -> None:
        self.membership.join(self.session, "Alice", "sid-a")

        self.assertIsNone(self.membership.leave(self.session, "sid-missing"))
        self.assertEqual(self.session.player_count, 1)

    def test_rejoin_with_same_name_after_leave(self) -> None:
        self.membership.join(self.session, "Alice", "sid-a")
        self.membership.leave(self.session, "sid-a")

        player = self.membership.join(self.session, "Alice", "sid-a2")

        self.assertEqual(player.id, "sid-a2")

    def test_update_player_state_protects_identity_fields(self) -> None:
        player = self.membership.join(self.session, "Alice", "sid-a")

        self.membership.update_player_state(
            self.session,
            "sid-a",
            {"coins": 250, "position": 4, "name": "Mallory", "color": "#000000", "id": "sid-z"},
        )

        self.assertEqual(player.state["coins"], 250)
        self.assertEqual(player.state["position"], 4)
        self.assertEqual(player.to_payload()["name"], "Alice")
        self.assertEqual(player.to_payload()["color"], PLAYER_COLORS[0])
        self.assertEqual(player.to_payload()["id"], "sid-a")
        self.assertIsNone(self.membership.update_player_state(self.session, "sid-missing", {"coins": 1}))

    def test_join_error_payload(self) -> None:
        payload = JoinError(JoinErrorReason.SESSION_FULL).to_payload()

        self.assertEqual(payload["reason"], "SessionFull")
        self.assertTrue(payload["message"])


if __name__ == "__main__":
    unittest.main()
