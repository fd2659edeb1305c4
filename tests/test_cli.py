import json

import pytest

from order_scraper import cli, pipeline
from order_scraper.errors import InvoiceParsingFailedError, SignInRequiredError
from order_scraper.json_logger import JsonLogger
from order_scraper.models import CreditCardPayment, Order, OrderItem, Shipment
from order_scraper.money import parse_monetary_amount
from order_scraper.scraper import ScrapeSummary

from conftest import logged_events
from invoice_samples import CLASSIC_INVOICE_HTML, ORDER_ID


def _money(text: str):
    return parse_monetary_amount(text)


def _order(order_id: str, total: str, charged: str) -> Order:
    return Order(
        id=order_id,
        currency="$",
        date="2024-03-02",
        subtotal=_money(total),
        tax=_money("$0.00"),
        total=_money(total),
        shipments=[Shipment(date="2024-03-03", items=[OrderItem(name="Widget", price=_money(total), quantity=1)])],
        payments=[CreditCardPayment(date="2024-03-03", amount=_money(charged), card_type="Visa", last4="1234")],
    )


ORDERS = [
    _order("111-0000000-0000001", "$10.00", "$10.00"),
    _order("111-0000000-0000002", "$25.50", "$25.50"),
]


class FakeStore:
    def __init__(self, orders=ORDERS, invoices=None, years=None):
        self.orders = list(orders)
        self.invoices = invoices or {}
        self.years = years or {}

    async def get_orders(self, user=None):
        return self.orders

    async def get_invoice_html(self, order_id):
        return self.invoices.get(order_id)

    async def complete_years(self, user):
        return list(self.years)

    async def count_orders_for_year(self, year, user=None):
        return self.years[year]


@pytest.fixture
def cli_env(monkeypatch, log_stream):
    store = FakeStore(invoices={ORDER_ID: CLASSIC_INVOICE_HTML}, years={2023: 4, 2022: 7})

    async def fake_open_store(logger):
        return store

    monkeypatch.setattr(cli, "_open_store", fake_open_store)
    monkeypatch.setattr(cli, "get_logger", lambda run_id=None: JsonLogger(run_id=run_id, stream=log_stream, log_file_path=None))
    return store


def test_parser_reads_scrape_options():
    args = cli.build_parser().parse_args(
        ["--run_id", "abc", "scrape", "--user", "alice", "--from", "2 weeks", "--to", "2024-01-31", "--headed"]
    )

    assert args.run_id == "abc"
    assert args.command == "scrape"
    assert args.user == "alice"
    assert (args.date_from, args.date_to) == ("2 weeks", "2024-01-31")
    assert args.headed is True
    assert args.no_interaction is False


def test_parser_rejects_bad_amounts():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["orders", "--total", "ten dollars"])


def test_orders_filters_by_total(cli_env, capsys):
    assert cli.main(["orders", "--total", "25.50"]) == cli.EXIT_OK

    out = capsys.readouterr().out
    assert "111-0000000-0000002" in out
    assert "111-0000000-0000001" not in out


def test_orders_filters_by_charge_and_prints_json(cli_env, capsys):
    assert cli.main(["orders", "--charge", "10", "--json"]) == cli.EXIT_OK

    printed = json.loads(capsys.readouterr().out)
    assert [order["id"] for order in printed] == ["111-0000000-0000001"]
    assert printed[0]["payments"][0]["type"] == "credit_card"


def test_order_html_prints_stored_invoice(cli_env, capsys):
    assert cli.main(["order-html", ORDER_ID]) == cli.EXIT_OK
    assert ORDER_ID in capsys.readouterr().out

    assert cli.main(["order-html", "999-0000000-0000000"]) == cli.EXIT_FAILURE
    assert "Invalid order ID" in capsys.readouterr().err


def test_tokens_prints_the_token_stream(cli_env, capsys):
    assert cli.main(["tokens", ORDER_ID]) == cli.EXIT_OK

    lines = capsys.readouterr().out.splitlines()
    assert "Order Total: $96.33" in lines


def test_years_lists_complete_years(cli_env, capsys):
    assert cli.main(["years"]) == cli.EXIT_OK

    out = capsys.readouterr().out
    assert out.startswith("# Complete years")
    assert "* 2022 (7 orders)" in out
    assert out.index("2022") < out.index("2023")


def test_scrape_reports_summary(cli_env, monkeypatch, capsys, log_stream):
    calls = {}

    async def fake_run_scrape(**kwargs):
        calls.update(kwargs)
        summary = ScrapeSummary(years=[2024])
        summary.add_order(ORDERS[0])
        return summary

    monkeypatch.setattr(pipeline, "run_scrape", fake_run_scrape)

    assert cli.main(["--run_id", "run-1", "scrape", "--headed", "--no-interaction", "--from", "2024-01-01"]) == cli.EXIT_OK

    assert "Scraped 1 order(s) across 1 year(s)" in capsys.readouterr().out
    assert calls["headless"] is False
    assert calls["interaction_allowed"] is False
    events = logged_events(log_stream)
    assert events and all(event["run_id"] == "run-1" for event in events)
    assert any(event["message"] == "limiting scrape to date range" for event in events)


def test_scrape_sign_in_failure_exits_with_failure(cli_env, monkeypatch, capsys):
    async def fake_run_scrape(**kwargs):
        raise SignInRequiredError("sign in", url="https://www.example.com/ap/signin")

    monkeypatch.setattr(pipeline, "run_scrape", fake_run_scrape)

    assert cli.main(["scrape"]) == cli.EXIT_FAILURE
    assert "sign in" in capsys.readouterr().err


def test_scrape_parse_failure_saves_fixture(cli_env, monkeypatch, tmp_path):
    import order_scraper.config as config_module

    async def fake_run_scrape(**kwargs):
        raise InvoiceParsingFailedError("no total", content=CLASSIC_INVOICE_HTML, url="https://www.example.com/print")

    monkeypatch.setattr(pipeline, "run_scrape", fake_run_scrape)
    monkeypatch.setattr(
        config_module,
        "config",
        config_module.Config.load_from_env(
            {"ORDER_SCRAPER_DATA_DIR": str(tmp_path), "ORDER_SCRAPER_FIXTURES_DIR": str(tmp_path / "fixtures")}
        ),
    )
    monkeypatch.chdir(tmp_path)

    assert cli.main(["scrape", "--save-fixtures"]) == cli.EXIT_PARSE_FAILED

    saved = list((tmp_path / "fixtures").glob("invoice-*.html"))
    assert len(saved) == 1
    assert ORDER_ID not in saved[0].read_text(encoding="utf-8")


def test_scrape_rejects_bad_date_range(cli_env, capsys):
    assert cli.main(["scrape", "--from", "last tuesday"]) == cli.EXIT_FAILURE
    assert "Expected YYYY-MM-DD" in capsys.readouterr().err
