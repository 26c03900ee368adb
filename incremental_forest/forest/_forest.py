"""Forest.

An ensemble of self-organising Link trees ("masters") learning a scalar in
[-1, 1] from streamed records, one call at a time.
"""

from __future__ import annotations

import os
from os import PathLike
from typing import Any, Dict, Mapping, Sequence, Tuple
import logging
from pathlib import Path
from uuid import uuid4
import datetime
import math
import re

import orjson
from pydantic import AliasChoices, BaseModel, Field, ValidationError
import numpy as np
import pandas as pd

from incremental_forest.core._config import settings
from incremental_forest.core._exceptions import DataError, NotTrainedError
from incremental_forest.core._exceptions import CorruptionError
from ._common import BASE_RATING, LATEST_VERSION, MAX_MASTERS, RESULT_FIELD
from ._common import same_class
from ._link import Link
from ._records import prefix_record, type_class
from ._types import EvalContext, Record, Response


logger = logging.getLogger(__name__)


class ForestState(BaseModel):
    """Persisted state of a Forest."""

    sequence: int = Field(
        default=0,
        validation_alias=AliasChoices("sequence", "seq"),
        description="Last master sequence number used.",
    )
    schema_version: int = Field(
        validation_alias=AliasChoices("schema_version", "version"),
        description="Schema version the masters were written with.",
    )
    masters: Dict[str, Dict[str, Any] | str] = Field(
        default_factory=dict,
        description="Master trees, nested or as individually serialized JSON.",
    )


def _rating(response: Response) -> float:
    return response.rating if response.rating is not None else 0.0


class Forest:
    """Online decision forest answering and learning one record at a time.

    The persisted state is loaded on construction. Call ``close()`` (or use
    the forest as a context manager) to save it when the session learned or
    migrated anything.

    Args:
        name: Name of the forest, used in the data file name.
        site: Site label embedded in master ids. Defaults to the
            ``FOREST_SITE`` setting.
        path: Directory holding the data file. Defaults to the
            ``FOREST_DATA_DIR`` setting.
        explain: Return detailed responses with a back track of every Branch
            decision. Defaults to the ``FOREST_EXPLAIN`` setting.
        random_state: Seed for the structural random choices.
    """

    def __init__(
        self,
        name: str | None = None,
        site: str | None = None,
        path: str | PathLike[str] | None = None,
        explain: bool | None = None,
        random_state: int | None = None,
    ):
        self.name: str = self._get_name(name)
        self.site: str = site if site is not None else settings.FOREST_SITE
        self.path: Path = self._set_path(path)
        self.random_state = random_state

        self._ctx = EvalContext(
            rng=np.random.default_rng(random_state),
            explain=settings.FOREST_EXPLAIN if explain is None else explain,
        )

        self._masters: Dict[str, Link] = {}
        self._sequence = 0
        self._schema_version = LATEST_VERSION
        self._learned = False
        self._migrated = False
        self._max_steps = 0
        self._min_steps: int | None = None
        self._stop = False

        self._load()
        self.upgrade()

    def _get_name(self, name: str | None) -> str:
        if name is None:
            name = str(uuid4()).replace("-", "_")
            logger.debug(f"No name provided. Assigned name: {name}")

        if not re.match(r"^[a-zA-Z0-9_]+$", name):
            raise ValueError("Name must be only alphanumeric and underscores")
        return name

    def _set_path(self, path: str | PathLike[str] | None) -> Path:
        base = Path(path if path is not None else settings.FOREST_DATA_DIR).resolve()
        if base.is_file():
            raise ValueError("Please provide a directory, not a file.")
        return base

    @property
    def file_path(self) -> Path:
        """The data file of this forest."""
        return self.path / f"Forest-{self.name}.json"

    @property
    def explain(self) -> bool:
        """Whether ``answer`` returns detailed responses."""
        return self._ctx.explain

    @explain.setter
    def explain(self, value: bool) -> None:
        self._ctx.explain = value

    @property
    def masters(self) -> Dict[str, Link]:
        """Master trees by id, in polling order."""
        return dict(self._masters)

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def schema_version(self) -> int:
        return self._schema_version

    @property
    def learned(self) -> bool:
        """Whether anything was learned this session."""
        return self._learned

    @property
    def migrated(self) -> bool:
        """Whether the loaded state was upgraded this session."""
        return self._migrated

    @property
    def step_stats(self) -> Tuple[int | None, int]:
        """Min and max steps of the answers chosen this session."""
        return self._min_steps, self._max_steps

    def stop(self) -> None:
        """Stop ``fit`` before the next record."""
        self._stop = True

    def _load(self) -> None:
        """Load the persisted state, if any, and prune the masters."""
        if not self.file_path.exists():
            return

        try:
            state = ForestState.model_validate(orjson.loads(self.file_path.read_bytes()))
            masters = {
                master_id: Link.from_dict(
                    orjson.loads(master) if isinstance(master, str) else master
                )
                for master_id, master in state.masters.items()
            }
        except (
            orjson.JSONDecodeError,
            ValidationError,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            raise CorruptionError(
                f"Failed to load forest {self.name}. Data file is probably "
                f"corrupted: {e}"
            )

        self._sequence = state.sequence
        self._schema_version = state.schema_version
        self._masters = masters
        logger.info(f"Forest {self.name} has {len(masters)} master(s)")

        worst = second_worst = math.inf
        worst_id: str | None = None
        second_worst_id: str | None = None
        for master_id, master in self._masters.items():
            master.cleanup()
            logger.info(
                f"{master_id}: rating {master.rating:.4f} "
                f"with {master.rating_samples} experience"
            )

            # ties go to the latest master
            if second_worst >= master.rating:
                if worst >= master.rating:
                    second_worst_id, second_worst = worst_id, worst
                    worst_id, worst = master_id, master.rating
                else:
                    second_worst_id, second_worst = master_id, master.rating

        if len(self._masters) < 3:
            self._masters = dict(
                sorted(self._masters.items(), key=lambda kv: kv[1].rating_samples)
            )
        elif worst_id is not None and second_worst_id is not None:
            worst_master = self._masters[worst_id]
            second_master = self._masters[second_worst_id]
            if worst_master.rating_samples < 1.5 * second_master.rating_samples:
                logger.warning(
                    f"Removing worst rated master {worst_id} with a rating of "
                    f"{worst_master.rating:.4f} and "
                    f"{worst_master.rating_samples} experience"
                )
                del self._masters[worst_id]

    def upgrade(self) -> None:
        """Migrate every master to the latest schema version if needed."""
        if self._schema_version >= LATEST_VERSION:
            return

        logger.warning(
            f"Upgrading forest {self.name} from version {self._schema_version} "
            f"to {LATEST_VERSION}"
        )
        for master in self._masters.values():
            master.upgrade(self._schema_version)
        self._migrated = True
        self._schema_version = LATEST_VERSION

    def save(self) -> None:
        """Write the forest to its data file.

        Masters are serialized one at a time and embedded as nested JSON.
        """
        self.path.mkdir(parents=True, exist_ok=True)

        payload: Dict[str, object] = {
            "name": self.name,
            "saved_at": datetime.datetime.now().isoformat(),
            "sequence": self._sequence,
            "schema_version": self._schema_version,
            "masters": {
                master_id: orjson.Fragment(
                    orjson.dumps(master.to_dict(), option=orjson.OPT_SERIALIZE_NUMPY)
                )
                for master_id, master in self._masters.items()
            },
        }
        tmp_path = self.file_path.with_suffix(".json.tmp")
        tmp_path.write_bytes(orjson.dumps(payload))
        os.replace(tmp_path, self.file_path)
        logger.info(f"Saved forest {self.name} to {self.file_path}")

    def close(self) -> bool:
        """Save the forest if it learned or migrated anything.

        Returns:
            Whether the forest was saved.
        """
        if not (self._learned or self._migrated):
            return False

        if self._learned:
            logger.info(
                f"Forest {self.name} now has {len(self._masters)} master(s). "
                f"max steps: {self._max_steps}, min steps: {self._min_steps}"
            )
        self.save()
        return True

    def __enter__(self) -> Forest:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _new_master(self) -> Link:
        self._sequence += 1
        master_id = f"M{self.site}-{self._sequence}"
        master = Link()
        self._masters[master_id] = master
        logger.info(f"Created master {master_id}")
        return master

    def _check_result(self, result: Any) -> float | None:
        if result is None:
            return None
        try:
            value = float(result)
        except (TypeError, ValueError):
            raise DataError(f"Result must be a number, got {result!r}")

        if not -1.0 <= value <= 1.0:
            logger.warning(f"Ignoring invalid result of {result}")
            return None
        return value

    def _respond(self, record: Mapping[Any, Any], result: Any = None) -> Response | None:
        data = dict(record)
        stored_result = data.pop(RESULT_FIELD, None)
        if result is None:
            result = stored_result

        result = self._check_result(result)
        prefixed: Record = prefix_record(data)

        if result is not None:
            if not any(type_class(v) is not None for v in prefixed.values()):
                raise DataError("Cannot learn from a record without usable fields")
            self._learned = True

        if not self._masters and result is None:
            raise NotTrainedError("The forest needs to learn before answering")

        best: Response | None = None
        total_steps = 0
        for master in list(self._masters.values()):
            response = master.evaluate(prefixed, result, self._ctx)
            if response is None:
                continue

            total_steps += response.steps
            if best is None or _rating(response) >= _rating(best):
                best = response
                if total_steps > response.steps and _rating(best) >= BASE_RATING:
                    break  # two sources consulted and the best is good enough

        if result is not None and (
            best is None
            or (_rating(best) < BASE_RATING - 0.2 and len(self._masters) < MAX_MASTERS)
        ):
            response = self._new_master().evaluate(prefixed, result, self._ctx)
            if response is not None and (
                best is None or _rating(response) >= _rating(best)
            ):
                best = response

        if best is not None:
            self._max_steps = max(self._max_steps, best.steps)
            self._min_steps = (
                best.steps if self._min_steps is None else min(self._min_steps, best.steps)
            )

        if result is not None and (best is None or not same_class(best.answer, result)):
            raise CorruptionError(
                f"Learning failed: expected an answer like {result}, got "
                f"{None if best is None else best.answer}"
            )

        return best

    def answer(
        self, record: Mapping[Any, Any], result: float | None = None
    ) -> float | Response:
        """Answer a record, learning from ``result`` when given.

        Args:
            record: Field name to value mapping. Values are numbers, strings
                or sequences of them. A ``"_result"`` field is used as the
                result when ``result`` is None.
            result: Expected answer in [-1, 1]. Out of range values are
                ignored.

        Returns:
            The answer, or the detailed response in explain mode. 0.0 when
            no tree could answer.

        Raises:
            NotTrainedError: If the forest never learned and no result is given.
            DataError: If learning from a record without usable fields.
            CorruptionError: If learning did not converge on the result.
        """
        best = self._respond(record, result)
        if self.explain:
            return best if best is not None else 0.0
        return best.answer if best is not None else 0.0

    def fit(self, X: pd.DataFrame, y: Sequence[float]) -> Forest:
        """Learn every row of X, in order.

        Missing (NaN) cells are treated as absent fields.

        Args:
            X: One record per row.
            y: Expected answers, one per row.
        """
        if len(X) != len(y):
            raise DataError("y and X must have the same number of rows")

        for (_, row), result in zip(X.iterrows(), y):
            if self._stop:
                logger.info(f"Forest {self.name} stopped before the end of the data")
                self._stop = False
                break
            self._respond(row.to_dict(), result)
        return self

    def predict(self, X: pd.DataFrame) -> pd.Series:
        """Answer every row of X without learning."""
        answers = []
        for _, row in X.iterrows():
            best = self._respond(row.to_dict())
            answers.append(best.answer if best is not None else 0.0)
        return pd.Series(answers, index=X.index, dtype=float, name="answer")

    def masters_summary(self) -> pd.DataFrame | None:
        """Rating, usage and shape of every master."""
        rows = [
            {
                "id": master_id,
                "rating": master.rating,
                "usage": master.rating_samples,
                "kind": master.kind,
                "depth": master.depth(),
            }
            for master_id, master in self._masters.items()
        ]
        return pd.DataFrame(rows) if rows else None

    def __repr__(self) -> str:
        return f"Forest(name={self.name})"

    def __str__(self) -> str:
        return f"Forest(name={self.name})"
