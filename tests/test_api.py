from __future__ import annotations

import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from hdc.db import Base, create_session_factory, get_db
from hdc.main import app
from hdc.models import Team, TeamPlayer
from hdc.settings import LeagueSettings, get_settings

ADMIN = {"X-Admin-Key": "let-me-in"}


class LeagueApiTests(unittest.TestCase):
    def setUp(self) -> None:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=engine)
        self.SessionLocal = create_session_factory(engine)

        db = self.SessionLocal()
        alpha = Team(id="team-a", division_id=1, name="Alpha")
        alpha.players = [TeamPlayer(gamertag="Ace")]
        db.add_all([alpha, Team(id="team-b", division_id=1, name="Bravo")])
        db.commit()
        db.close()

        def _get_db():
            session = self.SessionLocal()
            try:
                yield session
            finally:
                session.close()

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_settings] = lambda: LeagueSettings(admin_secret="let-me-in")
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _submit(self, team: str, opponent: str, maps: int, opponent_maps: int):
        return self.client.post(
            "/api/submissions",
            json={
                "division_id": 1,
                "week": 1,
                "your_team_id": team,
                "opponent_id": opponent,
                "your_maps": maps,
                "opponent_maps": opponent_maps,
            },
        )

    def test_teams_list_declared_players(self) -> None:
        response = self.client.get("/api/teams", params={"division_id": 1})

        self.assertEqual(200, response.status_code)
        self.assertEqual(["Alpha", "Bravo"], [team["name"] for team in response.json()])
        self.assertEqual(["Ace"], response.json()[0]["players"])

    def test_confirmed_submission_updates_standings(self) -> None:
        self.assertEqual("pending", self._submit("team-a", "team-b", 3, 2).json()["outcome"])
        body = self._submit("team-b", "team-a", 2, 3).json()

        self.assertEqual("confirmed", body["outcome"])
        match = self.client.get(f"/api/matches/{body['match_id']}").json()
        self.assertEqual((3, 2), (match["team1_maps"], match["team2_maps"]))

        standings = self.client.get("/api/standings", params={"division_id": 1}).json()
        self.assertEqual("Alpha", standings[0]["name"])
        self.assertEqual(1, standings[0]["map_diff"])

    def test_invalid_score_is_bad_request(self) -> None:
        response = self._submit("team-a", "team-b", 2, 2)

        self.assertEqual(400, response.status_code)

    def test_admin_routes_require_key(self) -> None:
        payload = {
            "division_id": 1,
            "week": 2,
            "team_a_id": "team-a",
            "team_b_id": "team-b",
            "team_a_maps": 3,
            "team_b_maps": 0,
        }

        self.assertEqual(401, self.client.post("/api/admin/matches", json=payload).status_code)
        response = self.client.post("/api/admin/matches", json=payload, headers=ADMIN)
        self.assertEqual(200, response.status_code)
        self.assertTrue(response.json()["admin_approved"])

        match_id = response.json()["id"]
        self.assertEqual(200, self.client.delete(f"/api/admin/matches/{match_id}", headers=ADMIN).status_code)
        self.assertEqual(404, self.client.get(f"/api/matches/{match_id}").status_code)

    def test_disputed_submission_can_be_force_approved(self) -> None:
        self._submit("team-a", "team-b", 3, 0)
        self._submit("team-b", "team-a", 1, 3)
        disputed = self.client.get("/api/submissions", params={"status": "disputed"}).json()
        self.assertEqual(2, len(disputed))

        response = self.client.post(f"/api/admin/submissions/{disputed[0]['id']}/approve", headers=ADMIN)

        self.assertEqual(200, response.status_code)
        self.assertEqual([], self.client.get("/api/submissions", params={"status": "disputed"}).json())
        self.assertEqual(
            409,
            self.client.post(f"/api/admin/submissions/{disputed[0]['id']}/approve", headers=ADMIN).status_code,
        )

    def test_unknown_division_is_not_found(self) -> None:
        self.assertEqual(404, self.client.get("/api/standings", params={"division_id": 7}).status_code)


if __name__ == "__main__":
    unittest.main()
