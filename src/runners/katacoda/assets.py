"""Asset bookkeeping for generated Katacoda tutorials."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List


@dataclass(frozen=True)
class Asset:
    """A file shipped with the tutorial."""

    source: Path
    target: str
    katacoda_directory: str
    copy: bool


class AssetManager:
    """
    Collects files that belong into a tutorial's ``assets`` folder.

    Registered files are copied on ``copy_assets``; those with a Katacoda
    directory are also listed in ``index.json`` so Katacoda uploads them
    into the scenario's environment.
    """

    def __init__(self, asset_directory: Path) -> None:
        self.asset_directory = Path(asset_directory)
        self.assets: List[Asset] = []

    def register_file(
        self, source: Path, target: str, katacoda_directory: str, copy: bool
    ) -> None:
        self.assets.append(Asset(Path(source), target, katacoda_directory, copy))

    def register_directory(
        self, source: Path, target: str, katacoda_directory: str, copy: bool
    ) -> None:
        """Register every file below ``source``, keeping relative paths."""
        source = Path(source)
        for file_path in sorted(p for p in source.rglob("*") if p.is_file()):
            relative = file_path.relative_to(source)
            self.register_file(
                file_path,
                str(Path(target) / relative).replace("\\", "/"),
                katacoda_directory,
                copy,
            )

    def copy_assets(self) -> None:
        for asset in self.assets:
            if not asset.copy:
                continue
            destination = self.asset_directory / asset.target
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(asset.source, destination)

    def get_katacoda_assets(self) -> List[Dict[str, str]]:
        return [
            {"file": asset.target, "target": asset.katacoda_directory}
            for asset in self.assets
            if asset.katacoda_directory
        ]
