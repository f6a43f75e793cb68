"""
Tests for the betting API routes.

Services run over the in-memory stores; responses are checked in the
envelope format clients parse.
"""

from datetime import timedelta
from decimal import Decimal

from luckybet.api.routes import BET_PLACED, DEPOSIT_PROMPT_SENT, FREE_BET_PLACED, LOBBY_TITLE
from tests.fakes import MSISDN, NOW, make_account, make_game

BET_URL = "/api/v1/place_bet_luckynumber"
FAR_FUTURE = NOW + timedelta(days=3650)


def bet_body(**overrides):
    return {"amount": "50", "choice": "3", "game_cat_id": 1, **overrides}


class TestPlaceBetLuckyNumber:
    """Tests for POST /api/v1/place_bet_luckynumber."""

    def test_bet_placed(self, client, fake_db, game, funded_account, auth_headers):
        response = client.post(BET_URL, json=bet_body(), headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["Status"] == 200
        assert data["StatusCode"] == 0
        assert data["StatusMessage"] == BET_PLACED
        assert data["FreeBet"] == "false"
        results = data["GameResults"]
        assert sorted(results["Boxes"]) == [str(box) for box in range(1, 8)]
        assert results["ResultStatus"] == "loss"
        assert results["SelectedBox"] == "3"
        assert Decimal(results["WinAmount"]) == Decimal("0")
        assert results["GameID"] == fake_db.bets[0][0].reference
        assert fake_db.accounts[MSISDN].balance == Decimal("50.00")

    def test_numeric_and_string_fields_are_equivalent(
        self, client, fake_db, game, auth_headers
    ):
        fake_db.add_account(make_account(balance="100.00"))

        first = client.post(BET_URL, json=bet_body(amount=50, choice=3), headers=auth_headers)
        second = client.post(
            BET_URL, json=bet_body(amount="50.00", choice="3", game_cat_id="1"),
            headers=auth_headers,
        )

        assert first.json()["StatusCode"] == second.json()["StatusCode"] == 0
        assert fake_db.accounts[MSISDN].balance == Decimal("0.00")

    def test_free_bet(self, client, fake_db, game, auth_headers):
        fake_db.add_account(make_account(balance=0, free_bet_count=1, free_bet_expiry=FAR_FUTURE))

        response = client.post(BET_URL, json=bet_body(), headers=auth_headers)

        assert response.json()["StatusMessage"] == FREE_BET_PLACED
        assert response.json()["FreeBet"] == "true"

    def test_insufficient_balance(self, client, fake_db, game, auth_headers):
        """Business rejections are 202 envelopes with StatusCode 3 for balance."""
        fake_db.add_account(make_account(balance="10.00"))

        response = client.post(BET_URL, json=bet_body(), headers=auth_headers)

        assert response.status_code == 202
        assert response.json() == {
            "Status": 202,
            "StatusCode": 3,
            "StatusMessage": "insufficient balance",
        }

    def test_wrong_amount(self, client, fake_db, game, funded_account, auth_headers):
        response = client.post(BET_URL, json=bet_body(amount="20"), headers=auth_headers)

        assert response.status_code == 202
        assert response.json()["StatusCode"] == 1
        assert response.json()["StatusMessage"] == "Invalid Bet Amount. Expected 50.00."

    def test_sub_cent_stake_rejected(self, client, fake_db, game, funded_account, auth_headers):
        balance = fake_db.accounts[MSISDN].balance

        response = client.post(BET_URL, json=bet_body(amount="50.004"), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["StatusCode"] == 1
        assert fake_db.accounts[MSISDN].balance == balance
        assert fake_db.bets == []

    def test_choice_out_of_range(self, client, game, funded_account, auth_headers):
        response = client.post(BET_URL, json=bet_body(choice=9), headers=auth_headers)

        assert response.status_code == 202
        assert "between 1 and 7" in response.json()["StatusMessage"]

    def test_unknown_game(self, client, funded_account, auth_headers):
        response = client.post(BET_URL, json=bet_body(game_cat_id=404), headers=auth_headers)

        assert response.status_code == 202
        assert response.json()["StatusMessage"] == "Game not found"

    def test_self_excluded(self, client, fake_db, game, auth_headers):
        fake_db.add_account(make_account(self_exclusion_until=FAR_FUTURE))

        response = client.post(BET_URL, json=bet_body(), headers=auth_headers)

        assert response.status_code == 202
        assert response.json()["StatusMessage"] == "user account is inactive"

    def test_invalid_json(self, client, auth_headers):
        response = client.post(
            BET_URL,
            content=b"{not json",
            headers={**auth_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"Status": 400, "StatusCode": 1, "StatusMessage": "invalid JSON"}

    def test_missing_field(self, client, auth_headers):
        response = client.post(BET_URL, json={"amount": 50}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["StatusCode"] == 1

    def test_token_required(self, client):
        response = client.post(BET_URL, json=bet_body())

        assert response.status_code == 401
        assert response.json()["StatusMessage"] == "Unauthorized"

    def test_authorization_header_accepted(self, client, tokens, game, funded_account):
        headers = {"Authorization": f"Bearer {tokens.issue(MSISDN, 60)}"}

        response = client.post(BET_URL, json=bet_body(), headers=headers)

        assert response.status_code == 200

    def test_read_timeout(self, client, fake_db, game, funded_account, auth_headers, validator):
        validator.timeout_seconds = 0.05
        fake_db.delays["game"] = 1.0

        response = client.post(BET_URL, json=bet_body(), headers=auth_headers)

        assert response.status_code == 504
        assert response.json()["StatusCode"] == 2


class TestPlaceBetSpin:
    def test_spin(self, client, fake_db, game, funded_account, auth_headers):
        response = client.post(
            "/api/v1/place_bet_spin",
            json={"amount": 50, "game_cat_id": "1"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        spin = response.json()["Spin"]
        assert spin["row"] == ["7", "BAR", "LEMON"]
        assert spin["win"] is False
        assert spin["game_id"].startswith("SPIN_")


class TestInitiateDeposit:
    def test_prompt_sent(self, client, wallet, auth_headers):
        response = client.post(
            "/api/v1/initiate_deposit", json={"amount": 100}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["StatusMessage"] == DEPOSIT_PROMPT_SENT
        wallet.initiate_deposit.assert_awaited_once_with(MSISDN, Decimal("100.00"), "WEB")

    def test_amount_must_be_positive(self, client, wallet, auth_headers):
        response = client.post(
            "/api/v1/initiate_deposit", json={"amount": 0}, headers=auth_headers
        )

        assert response.status_code == 400
        wallet.initiate_deposit.assert_not_awaited()


class TestLuckyGames:
    """Tests for GET /api/v1/lucky_games."""

    def test_anonymous(self, client, fake_db):
        fake_db.add_game(make_game("1"))
        fake_db.add_game(make_game("2", category="Car Prize", bet_amount="100"))

        response = client.get("/api/v1/lucky_games")

        data = response.json()
        assert response.status_code == 200
        assert data["Title"] == LOBBY_TITLE
        assert data["Categories"][0] == "all"
        assert [g["game_cat_id"] for g in data["Games"]] == ["1", "2"]
        assert data["Balance"] is None
        assert data["Partial"] is False

    def test_logged_in(self, client, fake_db, game, auth_headers):
        fake_db.add_account(
            make_account(balance="75.00", free_bet_count=2, free_bet_expiry=FAR_FUTURE)
        )

        data = client.get("/api/v1/lucky_games", headers=auth_headers).json()

        assert Decimal(data["Balance"]) == Decimal("75.00")
        assert data["FreeBet"] == 2

    def test_category(self, client, fake_db):
        fake_db.add_game(make_game("1"))
        fake_db.add_game(make_game("2", category="Car Prize"))

        data = client.get("/api/v1/lucky_games", params={"category": "Car Prize"}).json()

        assert [g["game_cat_id"] for g in data["Games"]] == ["2"]

    def test_bad_token_is_anonymous(self, client, fake_db, game):
        response = client.get("/api/v1/lucky_games", headers={"x-access-token": "Bearer junk"})

        assert response.status_code == 200
        assert response.json()["Balance"] is None

    def test_partial_failure(self, client, fake_db, game, auth_headers):
        fake_db.errors["account"] = RuntimeError("replica down")

        data = client.get("/api/v1/lucky_games", headers=auth_headers).json()

        assert data["Partial"] is True
        assert len(data["Games"]) == 1

    def test_total_failure(self, client, fake_db):
        fake_db.errors["games"] = RuntimeError("catalog down")

        response = client.get("/api/v1/lucky_games")

        assert response.status_code == 503
        assert response.json()["StatusCode"] == 2


class TestHealthAndMeta:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_health_database_down(self, client, fake_db):
        fake_db.errors["ping"] = ConnectionError("refused")

        response = client.get("/health")

        assert response.status_code == 503

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "luckybet_" in response.text
