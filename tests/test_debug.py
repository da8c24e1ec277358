import pytest

from psfguard import debug


@pytest.fixture(autouse=True)
def _reset_debug():
    debug.init_debug(False)
    yield
    debug.init_debug(False)


def test_init_debug_toggles_flag():
    debug.init_debug(True)
    assert debug.is_debug_enabled() is True
    debug.init_debug(False)
    assert debug.is_debug_enabled() is False


@pytest.mark.parametrize(
    "func, prefix",
    [
        (debug.debug_print, "DEBUG"),
        (debug.debug_mtf, "MTF"),
        (debug.debug_detection, "DETECT"),
        (debug.debug_blob, "BLOB"),
    ],
)
def test_prefixed_output_when_enabled(capsys, func, prefix):
    debug.init_debug(True)
    func("hello 42")
    captured = capsys.readouterr()
    assert captured.err == f"{prefix}: hello 42\n"
    assert captured.out == ""


@pytest.mark.parametrize(
    "func", [debug.debug_print, debug.debug_mtf, debug.debug_detection, debug.debug_blob]
)
def test_silent_when_disabled(capsys, func):
    func("hidden")
    captured = capsys.readouterr()
    assert captured.err == ""
    assert captured.out == ""


def test_info_print_ignores_flag(capsys):
    debug.info_print("always shown")
    captured = capsys.readouterr()
    assert captured.out == "always shown\n"
    assert captured.err == ""