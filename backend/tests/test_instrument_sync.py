"""
Tests for the in-memory instrument directory.
"""

import json

import pytest
from unittest.mock import AsyncMock

from app.core.exceptions import InstrumentNotFound
from app.services.instrument_sync import Instrument, InstrumentDirectory, split_symbol


class TestInstrument:

    def test_from_upstox(self, instrument_records):
        inst = Instrument.from_upstox(instrument_records[0])

        assert inst.instrument_key == "NSE_EQ|INE062A01020"
        assert inst.trading_symbol == "SBIN"
        assert inst.is_equity
        assert not inst.is_future

    def test_from_upstox_rejects_empty_record(self):
        assert Instrument.from_upstox({"name": "nothing useful"}) is None

    def test_missing_type_is_not_equity(self):
        parsed = Instrument.from_upstox({"instrument_key": "NSE_EQ|X", "trading_symbol": "X"})
        built = Instrument(instrument_key="NSE_EQ|X", trading_symbol="X", exchange="NSE")

        assert parsed.instrument_type == built.instrument_type == ""
        assert not parsed.is_equity

    def test_type_predicates(self, instrument_records):
        future = Instrument.from_upstox(instrument_records[2])
        option = Instrument.from_upstox(instrument_records[3])

        assert future.is_future and not future.is_option
        assert option.is_option and not option.is_equity


class TestLookup:

    def test_split_symbol(self):
        assert split_symbol("NSE:SBIN") == "SBIN"
        assert split_symbol("SBIN") == "SBIN"

    def test_prefixed_and_bare_symbols_resolve_identically(self, directory):
        assert directory.lookup("NSE:SBIN") == directory.lookup("SBIN") == "NSE_EQ|INE062A01020"

    def test_unknown_symbol_returns_none(self, directory):
        assert directory.lookup("NSE:NOPE") is None

    def test_require_raises(self, directory):
        with pytest.raises(InstrumentNotFound) as exc_info:
            directory.require("NSE:NOPE")
        assert exc_info.value.symbol == "NOPE"

    def test_nse_listing_preferred_over_bse(self, tmp_path):
        directory = InstrumentDirectory(fallback_dir=tmp_path)
        directory.load([
            {"instrument_key": "NSE_EQ|X", "trading_symbol": "ABC", "exchange": "NSE"},
            {"instrument_key": "BSE_EQ|X", "trading_symbol": "ABC", "exchange": "BSE"},
        ])

        assert directory.lookup("ABC") == "NSE_EQ|X"
        # Both listings stay searchable by key
        assert len(directory) == 2

    def test_nse_listing_replaces_earlier_bse(self, tmp_path):
        directory = InstrumentDirectory(fallback_dir=tmp_path)
        directory.load([{"instrument_key": "BSE_EQ|X", "trading_symbol": "ABC", "exchange": "BSE"}])
        directory.load([{"instrument_key": "NSE_EQ|X", "trading_symbol": "ABC", "exchange": "NSE"}])

        assert directory.lookup("ABC") == "NSE_EQ|X"

    def test_later_non_nse_record_wins_among_non_nse(self, tmp_path):
        directory = InstrumentDirectory(fallback_dir=tmp_path)
        directory.load([
            {"instrument_key": "BSE_EQ|X", "trading_symbol": "ABC", "exchange": "BSE"},
            {"instrument_key": "MCX_FO|X", "trading_symbol": "ABC", "exchange": "MCX"},
        ])

        assert directory.lookup("ABC") == "MCX_FO|X"

    def test_load_skips_malformed_records(self, tmp_path):
        directory = InstrumentDirectory(fallback_dir=tmp_path)
        loaded = directory.load([None, "junk", {}, {"instrument_key": "NSE_EQ|Y", "trading_symbol": "Y"}])

        assert loaded == 1


class TestSearch:

    def test_short_query_returns_nothing(self, directory):
        assert directory.search("S") == []
        assert directory.search(None) == []

    def test_exact_match_ranked_first(self, directory):
        results = directory.search("sbin")

        assert [r.trading_symbol for r in results][0] == "SBIN"
        assert len(results) == 3

    def test_name_match(self, directory):
        results = directory.search("hdfc bank")
        assert [r.trading_symbol for r in results] == ["HDFCBANK"]

    def test_type_filter(self, directory):
        assert [r.trading_symbol for r in directory.search("SBIN", "FUTURE")] == ["SBIN24DECFUT"]
        assert [r.trading_symbol for r in directory.search("SBIN", "OPTION")] == ["SBIN24DEC800CE"]
        assert [r.trading_symbol for r in directory.search("SBIN", "EQUITY")] == ["SBIN"]

    def test_result_limit(self, tmp_path):
        directory = InstrumentDirectory(fallback_dir=tmp_path)
        directory.load([
            {"instrument_key": f"NSE_EQ|{i}", "trading_symbol": f"TEST{i}", "exchange": "NSE"}
            for i in range(80)
        ])

        assert len(directory.search("TEST")) == 50


class TestSync:

    @pytest.mark.asyncio
    async def test_sync_loads_remote_segments(self, tmp_path, instrument_records):
        directory = InstrumentDirectory(segments=("NSE",), fallback_dir=tmp_path)
        directory._download_segment = AsyncMock(return_value=instrument_records)

        stats = await directory.sync()

        assert stats[0].source == "remote"
        assert stats[0].loaded == 4
        assert directory.lookup("SBIN") == "NSE_EQ|INE062A01020"
        assert directory.last_sync is not None

    @pytest.mark.asyncio
    async def test_failed_download_uses_local_fallback(self, tmp_path, instrument_records):
        (tmp_path / "NSE.json").write_text(json.dumps(instrument_records), encoding="utf-8")
        directory = InstrumentDirectory(segments=("NSE",), fallback_dir=tmp_path)
        directory._download_segment = AsyncMock(side_effect=RuntimeError("HTTP 503"))

        stats = await directory.sync()

        assert stats[0].source == "fallback"
        assert stats[0].error == "HTTP 503"
        assert directory.lookup("NSE:SBIN") == "NSE_EQ|INE062A01020"

    @pytest.mark.asyncio
    async def test_failed_sync_keeps_previous_entries(self, directory):
        directory.segments = ("NSE", "BSE")
        directory._download_segment = AsyncMock(side_effect=RuntimeError("offline"))

        stats = await directory.sync()

        assert all(s.source == "none" for s in stats)
        assert directory.lookup("SBIN") == "NSE_EQ|INE062A01020"

    @pytest.mark.asyncio
    async def test_corrupt_fallback_is_logged_not_raised(self, tmp_path):
        (tmp_path / "MCX.json").write_text("{not json", encoding="utf-8")
        directory = InstrumentDirectory(segments=("MCX",), fallback_dir=tmp_path)
        directory._download_segment = AsyncMock(side_effect=RuntimeError("offline"))

        stats = await directory.sync()

        assert stats[0].source == "none"
        assert len(directory) == 0
