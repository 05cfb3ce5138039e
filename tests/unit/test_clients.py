import asyncio
import base64
import pytest
import requests
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from unified_ledger.clients.trading212 import Trading212Client, basic_auth_header
from unified_ledger.clients.truelayer import StoredTokenProvider, TrueLayerClient
from unified_ledger.errors import ExportNotReadyError, MissingCredentialsError, ProviderError


def response(mocker, payload=None, text="", status_error=None):
    resp = mocker.Mock()
    resp.json.return_value = payload
    resp.text = text
    resp.raise_for_status.side_effect = status_error
    return resp


def expires_in(minutes: float) -> int:
    return int((datetime.now(timezone.utc) + timedelta(minutes=minutes)).timestamp() * 1000)


@pytest.fixture
def session(mocker):
    return mocker.Mock(spec=requests.Session)


@pytest.fixture
def bank_user_config(user_config):
    asyncio.run(user_config.update(trueLayerAccount={"access_token": "tok", "expires_at": expires_in(30)}))
    return user_config


@pytest.mark.unit
class TestStoredTokenProvider:

    def test_returns_token(self, bank_user_config):
        assert asyncio.run(StoredTokenProvider(bank_user_config).get_token()) == "tok"

    def test_not_connected(self, user_config):
        with pytest.raises(MissingCredentialsError):
            asyncio.run(StoredTokenProvider(user_config).get_token())

    def test_expiring_token_counts_as_expired(self, user_config):
        asyncio.run(user_config.update(trueLayerAccount={"access_token": "tok", "expires_at": expires_in(0.5)}))

        with pytest.raises(MissingCredentialsError):
            asyncio.run(StoredTokenProvider(user_config).get_token())


@pytest.mark.unit
class TestTrueLayerClient:

    def test_list_accounts_sends_bearer_token(self, bank_user_config, session, mocker):
        # Arrange
        session.get.return_value = response(mocker, {"results": [{"account_id": "acc-1"}]})
        client = TrueLayerClient(StoredTokenProvider(bank_user_config), "https://api.example/data/v1/", session=session)

        # Act
        accounts = asyncio.run(client.list_accounts())

        # Assert
        assert accounts == [{"account_id": "acc-1"}]
        args, kwargs = session.get.call_args
        assert args[0] == "https://api.example/data/v1/accounts"
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}

    def test_transaction_window_params(self, bank_user_config, session, mocker):
        session.get.return_value = response(mocker, {"results": []})
        client = TrueLayerClient(StoredTokenProvider(bank_user_config), session=session)
        start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        end = datetime(2024, 3, 2, tzinfo=timezone.utc)

        asyncio.run(client.get_account_transactions("acc-1", start, end))

        assert session.get.call_args.kwargs["params"] == {
            "from": "2024-03-01T00:00:00.000Z",
            "to": "2024-03-02T00:00:00.000Z",
        }

    def test_card_amounts_pass_through_raw(self, bank_user_config, session, mocker):
        session.get.return_value = response(mocker, {"results": [{"transaction_id": "c1", "amount": 12.5}]})
        client = TrueLayerClient(StoredTokenProvider(bank_user_config), session=session)

        records = asyncio.run(client.get_card_transactions("card-1"))

        assert records[0]["amount"] == 12.5
        assert session.get.call_args.kwargs["params"] is None

    def test_balance_reads_current(self, bank_user_config, session, mocker):
        session.get.return_value = response(mocker, {"results": [{"current": 321.09}]})
        client = TrueLayerClient(StoredTokenProvider(bank_user_config), session=session)

        assert asyncio.run(client.get_account_balance("acc-1")) == Decimal("321.09")

    def test_missing_balance(self, bank_user_config, session, mocker):
        session.get.return_value = response(mocker, {"results": []})
        client = TrueLayerClient(StoredTokenProvider(bank_user_config), session=session)

        assert asyncio.run(client.get_card_balance("card-1")) is None

    def test_http_errors_become_provider_errors(self, bank_user_config, session, mocker):
        session.get.return_value = response(mocker, status_error=requests.HTTPError("401"))
        client = TrueLayerClient(StoredTokenProvider(bank_user_config), session=session)

        with pytest.raises(ProviderError):
            asyncio.run(client.list_cards())

    def test_no_request_without_token(self, user_config, session):
        client = TrueLayerClient(StoredTokenProvider(user_config), session=session)

        with pytest.raises(MissingCredentialsError):
            asyncio.run(client.check_credentials())
        session.get.assert_not_called()


@pytest.fixture
def trading_user_config(user_config):
    asyncio.run(user_config.connect_trading("key", "secret"))
    return user_config


@pytest.fixture
def trading_client(trading_user_config, session):
    return Trading212Client(
        trading_user_config,
        export_url="https://t212.example/exports",
        balance_url="https://t212.example/cash",
        export_wait_seconds=0,
        poll_attempts=3,
        poll_interval_seconds=0,
        session=session,
    )


@pytest.mark.unit
class TestTrading212Client:

    def test_basic_auth_header(self):
        header = basic_auth_header("key", "secret")

        assert header == {"Authorization": "Basic " + base64.b64encode(b"key:secret").decode()}

    def test_create_export_job(self, trading_client, session, mocker):
        # Arrange
        session.request.return_value = response(mocker, {"reportId": 42})

        # Act
        report_id = asyncio.run(trading_client.create_export_job(
            datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 1, tzinfo=timezone.utc)
        ))

        # Assert
        assert report_id == 42
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://t212.example/exports")
        assert kwargs["json"]["timeFrom"] == "2024-01-01T00:00:00.000Z"
        assert kwargs["json"]["dataIncluded"]["includeInterest"] is True
        assert kwargs["headers"] == basic_auth_header("key", "secret")

    def test_download_url_only_when_finished(self, trading_client, session, mocker):
        session.request.return_value = response(mocker, [
            {"reportId": 1, "status": "Finished", "downloadLink": "https://dl/1"},
            {"reportId": 2, "status": "Processing", "downloadLink": None},
        ])

        assert asyncio.run(trading_client.get_download_url(1)) == "https://dl/1"
        assert asyncio.run(trading_client.get_download_url(2)) is None
        assert asyncio.run(trading_client.get_download_url(3)) is None

    def test_fetch_export_polls_until_finished(self, trading_client, session, mocker):
        # Arrange
        session.request.side_effect = [
            response(mocker, {"reportId": 7}),
            response(mocker, [{"reportId": 7, "status": "Queued"}]),
            response(mocker, [{"reportId": 7, "status": "Finished", "downloadLink": "https://dl/7"}]),
            response(mocker, text="Action,Time,ID\n"),
        ]

        # Act
        csv_text = asyncio.run(trading_client.fetch_export(
            datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 1, tzinfo=timezone.utc)
        ))

        # Assert
        assert csv_text == "Action,Time,ID\n"
        assert session.request.call_count == 4
        assert session.request.call_args.kwargs["headers"] == {"Accept": "text/csv"}

    def test_fetch_export_gives_up(self, trading_client, session, mocker):
        session.request.side_effect = [response(mocker, {"reportId": 7})] + [
            response(mocker, [{"reportId": 7, "status": "Processing"}]) for _ in range(3)
        ]

        with pytest.raises(ExportNotReadyError):
            asyncio.run(trading_client.fetch_export(
                datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 1, tzinfo=timezone.utc)
            ))
        assert session.request.call_count == 4

    def test_balance(self, trading_client, session, mocker):
        session.request.return_value = response(mocker, {"free": 10, "total": 1234.5})

        assert asyncio.run(trading_client.get_balance()) == Decimal("1234.5")

    def test_balance_without_total(self, trading_client, session, mocker):
        session.request.return_value = response(mocker, {"free": 10})

        with pytest.raises(ProviderError):
            asyncio.run(trading_client.get_balance())

    def test_connection_errors_become_provider_errors(self, trading_client, session):
        session.request.side_effect = requests.ConnectionError("down")

        with pytest.raises(ProviderError):
            asyncio.run(trading_client.get_balance())

    def test_missing_credentials(self, user_config, session):
        client = Trading212Client(user_config, session=session)

        with pytest.raises(MissingCredentialsError):
            asyncio.run(client.get_balance())
        session.request.assert_not_called()
