import io

import pytest

from mix.mix_interpreter import Evaluator
from mix.mix_runtime import ScriptRunner, StdLib, core_packages


@pytest.fixture
def runner():
    """A fresh ScriptRunner with captured output."""
    return ScriptRunner()


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def evaluator(out):
    """A bare Evaluator wired with the core builtins and packages."""
    ev = Evaluator(writer=out)
    stdlib = StdLib(ev)
    for package in core_packages(stdlib):
        ev.register_package(package)
    return ev
