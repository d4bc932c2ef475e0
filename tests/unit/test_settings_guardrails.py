import pytest


def test_settings_guardrail_prod_live_mode_rejects_missing_keys() -> None:
    from app.config import Settings

    with pytest.raises(RuntimeError, match=r"STRIPE_SECRET_KEY"):
        Settings(
            ENV="prod",
            STRIPE_TEST_MODE=False,
            STRIPE_PUBLISHED_KEY="pk_live_abc",
            STRIPE_SECRET_KEY="   ",
        )


def test_settings_guardrail_prod_live_mode_names_every_missing_key() -> None:
    from app.config import Settings

    with pytest.raises(RuntimeError, match=r"STRIPE_PUBLISHED_KEY, STRIPE_SECRET_KEY"):
        Settings(ENV="prod", STRIPE_TEST_MODE=False, STRIPE_PUBLISHED_KEY="", STRIPE_SECRET_KEY="")


def test_settings_guardrail_prod_test_mode_allows_missing_live_keys() -> None:
    from app.config import Settings

    Settings(ENV="prod", STRIPE_TEST_MODE=True, STRIPE_PUBLISHED_KEY="", STRIPE_SECRET_KEY="")


def test_settings_guardrail_dev_allows_missing_live_keys() -> None:
    from app.config import Settings

    Settings(ENV="dev", STRIPE_TEST_MODE=False, STRIPE_PUBLISHED_KEY="", STRIPE_SECRET_KEY="")


def test_gateway_keys_select_test_pair_and_trim() -> None:
    from app.config import Settings

    s = Settings(
        ENV="test",
        STRIPE_TEST_MODE=True,
        STRIPE_TEST_PUBLISHED_KEY=" pk_test_1 ",
        STRIPE_TEST_SECRET_KEY="\tsk_test_1\n",
        STRIPE_PUBLISHED_KEY="pk_live_1",
        STRIPE_SECRET_KEY="sk_live_1",
    )

    keys = s.gateway_keys()
    assert keys.published == "pk_test_1"
    assert keys.secret == "sk_test_1"
    assert keys.is_complete
    assert keys.live is False


def test_gateway_keys_select_live_pair() -> None:
    from app.config import Settings

    s = Settings(
        ENV="prod",
        STRIPE_TEST_MODE=False,
        STRIPE_TEST_SECRET_KEY="sk_test_1",
        STRIPE_PUBLISHED_KEY="pk_live_1",
        STRIPE_SECRET_KEY=" sk_live_1 ",
    )

    keys = s.gateway_keys()
    assert keys.secret == "sk_live_1"
    assert keys.live is True


def test_gateway_keys_incomplete_when_secret_missing() -> None:
    from app.config import Settings

    s = Settings(ENV="test", STRIPE_TEST_MODE=True, STRIPE_TEST_PUBLISHED_KEY="pk", STRIPE_TEST_SECRET_KEY="")

    assert not s.gateway_keys().is_complete


@pytest.mark.parametrize("value,expected", [("read committed", "READ COMMITTED"), (" SERIALIZABLE ", "SERIALIZABLE")])
def test_postgres_isolation_level_accepts_safe_levels(value, expected) -> None:
    from app.db.session import postgres_isolation_level

    assert postgres_isolation_level(value) == expected


@pytest.mark.parametrize("value", ["READ UNCOMMITTED", "AUTOCOMMIT", ""])
def test_postgres_isolation_level_rejects_weak_levels(value) -> None:
    from app.db.session import postgres_isolation_level

    with pytest.raises(ValueError):
        postgres_isolation_level(value)


def test_request_dependency_reads_module_settings(monkeypatch) -> None:
    from app import config
    from app.api import deps

    assert deps.get_settings() is config.settings

    replacement = config.Settings(STRIPE_SECRET_KEY="sk_test_swapped", STRIPE_PUBLISHED_KEY="pk_test_swapped")
    monkeypatch.setattr(config, "settings", replacement)
    assert deps.get_settings() is replacement
