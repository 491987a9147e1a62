import io

import pytest

from assistant_bot.utils.logging import configure_logger, set_log_level


@pytest.fixture
def sink():
    buffer = io.StringIO()
    yield buffer
    set_log_level(False)


def test_debug_setting_enables_debug_output(sink):
    assert set_log_level(True, sink=sink) == "DEBUG"
    configure_logger("[TEST]", "blue").debug("split details")

    output = sink.getvalue()
    assert "[TEST]" in output
    assert "split details" in output


def test_info_level_hides_debug_output(sink):
    assert set_log_level(False, sink=sink) == "INFO"
    log = configure_logger("[TEST]", "blue")
    log.debug("hidden")
    log.info("shown")

    output = sink.getvalue()
    assert "hidden" not in output
    assert "shown" in output


def test_level_can_change_after_first_configuration(sink):
    set_log_level(False, sink=sink)
    set_log_level(True, sink=sink)
    configure_logger("[TEST]", "blue").debug("now visible")

    assert sink.getvalue().count("now visible") == 1
