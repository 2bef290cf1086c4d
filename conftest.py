import os
import pytest

from library import Library


@pytest.fixture
def data_file(tmp_path, request):
    # Unique data file per test
    return str(tmp_path / f"library_{request.node.name}.txt")


@pytest.fixture
def lib(data_file):
    lib = Library(data_file=data_file)
    yield lib
    lib.close()
    if os.path.exists(data_file):
        os.remove(data_file)
