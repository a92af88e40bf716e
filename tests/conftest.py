import numpy as np
import pytest

from fakes import FakeDevice


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
