from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from incremental_forest.forest import EvalContext, Forest


@pytest.fixture
def ctx() -> EvalContext:
    return EvalContext(rng=np.random.default_rng(7))


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def forest(data_dir: Path) -> Forest:
    return Forest("test_forest", site="", path=data_dir, explain=False, random_state=0)
