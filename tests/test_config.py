"""Tests for the process-wide options system."""

import os

import pytest

import blockstats._config as _cfg
from blockstats._config import (
    Options,
    get_options,
    options_context,
    reset_options,
    resolve_options,
    set_options,
)

_ENV = (
    "BLOCKSTATS_NCORES_MAX",
    "BLOCKSTATS_CHECK_ARGS",
    "BLOCKSTATS_BLOCK_SIZE_GB",
    "BLOCKSTATS_TYPECAST_WARNING",
)


def _clear():
    _cfg._overrides.clear()
    for var in _ENV:
        os.environ.pop(var, None)


class TestGetOptions:
    """Tests for get_options() resolution order."""

    def setup_method(self):
        _clear()

    def teardown_method(self):
        _clear()

    def test_defaults(self):
        opts = get_options()
        assert opts.check_args is True
        assert opts.block_size_gb == 1.0
        assert opts.typecast_warning is True
        assert opts.ncores_max >= 1

    def test_env_var_overrides_default(self):
        os.environ["BLOCKSTATS_BLOCK_SIZE_GB"] = "0.5"
        os.environ["BLOCKSTATS_CHECK_ARGS"] = "false"
        opts = get_options()
        assert opts.block_size_gb == 0.5
        assert opts.check_args is False

    def test_env_bool_case_insensitive(self):
        os.environ["BLOCKSTATS_TYPECAST_WARNING"] = "OFF"
        assert get_options().typecast_warning is False

    def test_env_var_invalid_bool(self):
        os.environ["BLOCKSTATS_CHECK_ARGS"] = "maybe"
        with pytest.raises(ValueError, match="BLOCKSTATS_CHECK_ARGS"):
            get_options()

    def test_programmatic_override_wins_over_env(self):
        os.environ["BLOCKSTATS_NCORES_MAX"] = "2"
        set_options(ncores_max=7)
        assert get_options().ncores_max == 7

    def test_reset_restores_env(self):
        os.environ["BLOCKSTATS_NCORES_MAX"] = "2"
        set_options(ncores_max=7)
        reset_options()
        assert get_options().ncores_max == 2


class TestSetOptions:
    """Tests for set_options() validation."""

    def setup_method(self):
        _clear()

    def teardown_method(self):
        _clear()

    def test_rejects_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown option"):
            set_options(backend="jax")

    def test_rejects_invalid_value_without_committing(self):
        with pytest.raises(ValueError, match="ncores_max"):
            set_options(ncores_max=0)
        assert "ncores_max" not in _cfg._overrides

    def test_rejects_nonpositive_budget(self):
        with pytest.raises(ValueError, match="block_size_gb"):
            set_options(block_size_gb=0)

    def test_string_bool_accepted(self):
        set_options(check_args="no")
        assert get_options().check_args is False


class TestOptionsContext:
    def setup_method(self):
        _clear()

    def teardown_method(self):
        _clear()

    def test_restores_previous_overrides(self):
        set_options(block_size_gb=2.0)
        with options_context(block_size_gb=0.1, check_args=False) as opts:
            assert opts.block_size_gb == 0.1
            assert get_options().check_args is False
        assert get_options().block_size_gb == 2.0
        assert get_options().check_args is True

    def test_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with options_context(typecast_warning=False):
                raise RuntimeError("boom")
        assert get_options().typecast_warning is True


class TestResolveOptions:
    def setup_method(self):
        _clear()

    def teardown_method(self):
        _clear()

    def test_explicit_options_win(self):
        set_options(block_size_gb=4.0)
        explicit = Options(ncores_max=3, block_size_gb=0.25)
        assert resolve_options(explicit) is explicit

    def test_none_overrides_ignored(self):
        explicit = Options(ncores_max=3)
        assert resolve_options(explicit, check_args=None) is explicit

    def test_overrides_replace_fields(self):
        opts = resolve_options(Options(ncores_max=3), check_args=False)
        assert opts.check_args is False
        assert opts.ncores_max == 3

    def test_options_are_frozen(self):
        opts = get_options()
        with pytest.raises(AttributeError):
            opts.check_args = False  # type: ignore[misc]


class TestPublicApi:
    def test_exports(self):
        import blockstats
        for name in ("get_options", "set_options", "reset_options", "options_context"):
            assert hasattr(blockstats, name)
