from datetime import datetime, timedelta, timezone

import pytest

import cli
from assessment_api.services.session_maintenance_service import SessionManager
from assessment_api.utils import time_utils


def test_ensure_utc() -> None:
    naive = datetime(2024, 5, 1, 8, 30)
    assert time_utils.ensure_utc(naive) == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

    jakarta = datetime(2024, 5, 1, 15, 30, tzinfo=timezone(timedelta(hours=7)))
    converted = time_utils.ensure_utc(jakarta)
    assert converted.utcoffset() == timedelta(0)
    assert converted.hour == 8

    assert time_utils.ensure_utc(None) is None


def test_cli_arguments() -> None:
    args = cli.parse_args(["limit", "7", "--max", "2"])
    assert (args.command, args.user_id, args.max) == ("limit", 7, 2)

    assert cli.parse_args(["inactive"]).days == 30

    with pytest.raises(SystemExit):
        cli.parse_args([])


@pytest.mark.asyncio
async def test_cli_commands_drive_the_session_manager(seed, session_factory) -> None:
    user = seed.user("Lina")
    now = datetime.now(timezone.utc)
    for minutes in range(4):
        seed.auth_session(user, last_used=now - timedelta(minutes=minutes))
    manager = SessionManager(session_factory)

    limited = await cli.run(cli.parse_args(["limit", str(user.id), "--max", "1"]), manager)
    stats = await cli.run(cli.parse_args(["stats"]), manager)

    assert limited == {"removed": 3}
    assert stats == {"total_sessions": 1, "active_sessions": 1, "expired_sessions": 0}
