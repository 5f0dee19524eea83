import pytest

from loanlink.db.session import normalize_database_url


@pytest.mark.parametrize("flag", ["true", "1", "ON"])
def test_ssl_true_becomes_sslmode_require(flag):
    url = normalize_database_url(f"postgresql+asyncpg://u:p@db.example.com/loans?ssl={flag}")
    assert url == "postgresql+asyncpg://u:p@db.example.com/loans?sslmode=require"


def test_explicit_sslmode_is_kept():
    url = normalize_database_url("postgresql+asyncpg://u:p@db/loans?ssl=true&sslmode=verify-full")
    assert url == "postgresql+asyncpg://u:p@db/loans?sslmode=verify-full"


@pytest.mark.parametrize("value", ["false", "disable", "prefer"])
def test_other_ssl_values_pass_through(value):
    url = normalize_database_url(f"postgresql+asyncpg://u:p@db/loans?ssl={value}&application_name=api")
    assert url == f"postgresql+asyncpg://u:p@db/loans?ssl={value}&application_name=api"


def test_url_without_query_is_unchanged():
    assert normalize_database_url("postgresql+asyncpg://u:p@db:5432/loans") == "postgresql+asyncpg://u:p@db:5432/loans"
