import pytest

from linecalc.sheet import Sheet


@pytest.fixture
def sheet():
    return Sheet()


@pytest.fixture
def calc(sheet):
    """Append one line to a shared sheet and return its render node."""

    def run(text):
        sheet.append_line(text)
        return sheet.lines[-1].render

    return run
