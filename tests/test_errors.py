import pytest

from pgd.errors import InstallError, PgdError, ReloadFailed


@pytest.mark.parametrize("code,expected", [(0, 1), (1, 1), (100, 100), (-9, 137), (-15, 143)])
def test_exit_codes_follow_shell_conventions(code, expected):
    assert PgdError("install", "x", exit_code=code).exit_code == expected


def test_killed_install_command():
    err = InstallError("install", -9)
    assert err.exit_code == 137
    assert err.underlying_exit_code == -9


def test_reload_keeps_psql_exit_code():
    assert ReloadFailed(2, "gone").exit_code == 2
