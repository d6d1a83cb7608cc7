import json
from datetime import date

import run_pipeline
from signalcheck.pipeline.engine import PipelineEngine
from signalcheck.providers.chain import PriceProviderChain
from tests.helpers import FakeClassifier, FakeDailyPrices, make_article, relevant, utc


def test_ingest_then_validate(config, store, monkeypatch):
    store.save_raw_article(make_article("n1", utc(2024, 3, 11, 15, 0)))
    prices = FakeDailyPrices({date(2024, 3, 11): 250.0, date(2024, 3, 12): 255.0})
    engine = PipelineEngine(
        config, store=store, classifier=FakeClassifier({"n1": relevant("TSLA", 0.8)}),
        prices=prices, sleep=lambda _: None,
    )

    assert engine.ingest().saved == 1
    summary = engine.validate()

    assert summary.validated == 1
    assert summary.correct == 1
    assert engine.report()["signals"]["overall"]["total"] == 1


def test_validation_engine_built_from_config(config, store):
    config["validation"]["mode"] = "intraday"
    config["validation"]["records_per_pause"] = 3
    engine = PipelineEngine(config, store=store, prices=FakeDailyPrices())

    validation = engine.validation_engine()

    assert validation.mode == "intraday"
    assert validation.min_age.total_seconds() == 2 * 3600
    assert validation.pacing.per_pause == 3


def test_check_ticker_asks_every_provider(config, store):
    class Unknown(FakeDailyPrices):
        def is_valid_ticker(self, ticker):
            return False

    chain = PriceProviderChain([Unknown(name="TwelveData"), FakeDailyPrices(name="Yahoo")])
    engine = PipelineEngine(config, store=store, prices=chain)
    assert engine.check_ticker(" aapl ") == {"TwelveData": False, "Yahoo": True}


def test_fetch_archives_configured_sources(config, store):
    class Source:
        def fetch_articles(self):
            return [make_article("x1", utc(2024, 3, 11))]

    engine = PipelineEngine(config, store=store, news_sources=[Source()])
    assert engine.fetch_news()["saved"] == 1


def test_scheduler_registers_three_jobs(config, store):
    scheduler = PipelineEngine(config, store=store).scheduler()
    assert set(scheduler.jobs) == {"news", "ingestion", "validation"}
    assert scheduler.intervals["validation"] == 120


def test_cli_missing_config_fails(tmp_path, capsys):
    assert run_pipeline.main(["--config", str(tmp_path / "absent.yaml"), "report"]) == 1
    assert "ERROR" in capsys.readouterr().err


def test_cli_report_prints_json(tmp_path, capsys):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"database:\n  path: {tmp_path / 'cli.db'}\n  cache_path: {tmp_path / 'cache.db'}\n"
    )
    assert run_pipeline.main(["--config", str(config_path), "report"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["news"]["total_raw"] == 0
