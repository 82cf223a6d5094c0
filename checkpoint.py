import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, TypeAdapter


M = TypeVar("M", bound=BaseModel)


class CheckpointMissingError(FileNotFoundError):
    """No prior-stage artifact exists to resume from."""


@dataclass(frozen=True)
class StageArtifact:
    folder: str
    prefix: str
    dated: bool = True


CATEGORIES = StageArtifact("category_result", "categories", dated=False)
SUBCATEGORIES = StageArtifact("category_result", "subcategory", dated=False)
INITIAL_PRODUCTS = StageArtifact("product_initial", "initial_products")
PRODUCT_DETAILS = StageArtifact("results", "product")
PRODUCT_FAILURES = StageArtifact("product_fail", "product_fail")


class CheckpointStore:
    """Stage outputs as JSON files under `root`.

    Dated artifacts are never rewritten: a second write for the same stage and
    date lands in `<prefix>_<date>_2.json`, then `_3`, and so on.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def stage_dir(self, artifact: StageArtifact) -> Path:
        path = self.root / artifact.folder
        path.mkdir(parents=True, exist_ok=True)
        return path

    def write_stage(
        self,
        artifact: StageArtifact,
        records: Sequence[BaseModel],
        date_stamp: Optional[str] = None,
    ) -> Path:
        payload = json.dumps(
            [r.model_dump(mode="json") for r in records],
            indent=2,
            ensure_ascii=False,
        )
        folder = self.stage_dir(artifact)
        if not artifact.dated:
            path = folder / f"{artifact.prefix}.json"
            path.write_text(payload, encoding="utf-8")
            return path
        if not date_stamp:
            raise ValueError(f"{artifact.prefix} artifacts need a date stamp")
        n = 1
        while True:
            suffix = "" if n == 1 else f"_{n}"
            path = folder / f"{artifact.prefix}_{date_stamp}{suffix}.json"
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(payload)
                return path
            except FileExistsError:
                n += 1

    def find_latest(self, artifact: StageArtifact) -> Path:
        """Newest artifact by (date, sequence). Raises `CheckpointMissingError`."""
        folder = self.root / artifact.folder
        if not artifact.dated:
            path = folder / f"{artifact.prefix}.json"
            if not path.is_file():
                raise CheckpointMissingError(f"No {artifact.prefix} checkpoint found at {path}")
            return path
        pattern = re.compile(rf"^{re.escape(artifact.prefix)}_(\d{{4}}-\d{{2}}-\d{{2}})(?:_(\d+))?\.json$")
        candidates: List[Tuple[str, int, Path]] = []
        if folder.is_dir():
            for entry in folder.iterdir():
                m = pattern.match(entry.name)
                if m and entry.is_file():
                    candidates.append((m.group(1), int(m.group(2) or 1), entry))
        if not candidates:
            raise CheckpointMissingError(f"No {artifact.prefix} checkpoint found in {folder}")
        return max(candidates, key=lambda c: (c[0], c[1]))[2]

    def read_stage(self, path: Path, model: Type[M]) -> List[M]:
        return TypeAdapter(List[model]).validate_json(Path(path).read_text(encoding="utf-8"))
