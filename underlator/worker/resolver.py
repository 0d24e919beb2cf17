"""Local model resolution: model name -> directory under the models folder."""

from pathlib import Path
from typing import List, Union

from underlator.exceptions import ModelUnavailable
from underlator.language_codes import extract_base_language


class ModelResolver:
    """Looks up translation models stored as directories in ``models_dir``."""

    def __init__(self, models_dir: Union[str, Path]):
        self.models_dir = Path(models_dir)

    def resolve(self, name: str) -> Path:
        """
        Return the local path of a model.

        Raises:
            ModelUnavailable: If the name is empty, escapes the models folder,
                or no such model directory exists
        """
        if not name or not name.strip():
            raise ModelUnavailable("No model specified")

        base = self.models_dir.resolve()
        path = (base / name).resolve()
        if base != path and base not in path.parents:
            raise ModelUnavailable(
                f"Model '{name}' is outside the models directory",
                details={"model": name},
            )

        if not path.is_dir():
            raise ModelUnavailable(
                f"Model '{name}' is not available in {self.models_dir}",
                details={"model": name, "models_dir": str(self.models_dir)},
            )
        return path

    def available(self) -> List[str]:
        """Names of the model directories present locally."""
        if not self.models_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.models_dir.iterdir() if entry.is_dir())

    def is_available(self, name: str) -> bool:
        try:
            self.resolve(name)
        except ModelUnavailable:
            return False
        return True

    @staticmethod
    def default_model_for(source_language: str, target_language: str) -> str:
        """Direction-specific OPUS-MT model name, e.g. ('en', 'ru') -> 'opus-mt-en-ru'."""
        return f"opus-mt-{extract_base_language(source_language)}-{extract_base_language(target_language)}"
