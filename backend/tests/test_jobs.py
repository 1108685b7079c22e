"""
RadCatalog Backend - Job Entrypoint Tests
===========================================

What:  Tests for `python -m app.jobs` (argument parsing, dispatch, exit codes).
How:   The module-level session scope is patched onto the in-memory test
       database; the catalog source is the fake.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from app import jobs
from app.exceptions import RadCatalogError, UpstreamError


def _scope_for(session_factory):
    @asynccontextmanager
    async def scope():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return scope


class TestParser:

    def test_all_commands_registered(self):
        parser = jobs.build_parser()
        for command in jobs.COMMANDS:
            assert parser.parse_args([command]).command == command

    def test_refresh_options(self):
        args = jobs.build_parser().parse_args(["refresh", "--template-id", "101"])
        assert args.template_id == "101"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            jobs.build_parser().parse_args([])


class TestRun:

    @pytest.mark.asyncio
    async def test_sync_then_generate(self, session_factory, catalog_source):
        parser = jobs.build_parser()
        with patch("app.jobs.session_scope", _scope_for(session_factory)), \
             patch("app.jobs.dispose_engine", AsyncMock()):
            synced = await jobs.run(parser.parse_args(["sync-all"]), source=catalog_source)
            generated = await jobs.run(
                parser.parse_args(["generate", "--seed", "7"]), source=catalog_source
            )

        assert synced["relationshipsCreated"] == 4
        assert generated == {"updated": 3, "skipped": 0}
        assert catalog_source.closed is True

    @pytest.mark.asyncio
    async def test_refresh_one_failure_raises(self, session_factory, catalog_source):
        parser = jobs.build_parser()
        with patch("app.jobs.session_scope", _scope_for(session_factory)), \
             patch("app.jobs.dispose_engine", AsyncMock()):
            await jobs.run(parser.parse_args(["sync-all"]), source=catalog_source)
            catalog_source.fail_details("101")
            catalog_source.templates = []

            with pytest.raises(RadCatalogError) as exc_info:
                await jobs.run(
                    parser.parse_args(["refresh", "--template-id", "101"]), source=catalog_source
                )

        assert "Failed to update template 101" in str(exc_info.value)


class TestMain:

    def test_exit_code_on_failure(self):
        with patch("app.jobs.run", AsyncMock(side_effect=UpstreamError(message="down"))):
            assert jobs.main(["sync-all"]) == 1

    def test_exit_code_on_success(self):
        with patch("app.jobs.run", AsyncMock(return_value={"updated": 1, "skipped": 0})):
            assert jobs.main(["generate"]) == 0
