# conftest.py
import matplotlib
import matplotlib.pyplot as plt
import pytest

@pytest.fixture(autouse=True)
def mpl_test_backend():
    """Switch to a non-interactive backend for all tests and drop leftover figures."""
    matplotlib.use('Agg')
    yield
    plt.close('all')
