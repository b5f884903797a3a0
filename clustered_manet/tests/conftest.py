import pytest

from clustered_manet.tests.helpers import make_builder


@pytest.fixture
def builder():
    return make_builder()
