"""
DocScrub Document Processor Module

Runs the optimizer over DOCX files: load, stages, serialize, commit.

Strategy:
1. Load the archive into a DocxPackage (in memory)
2. Run the enabled stages in fixed order: fonts, media, images, styles
3. Regenerate the archive with maximum-effort deflate
4. Write it only if it is strictly smaller than the input
"""

import logging
import os
import re
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Callable, Iterable, Optional

from deep_cleaner import remove_embedded_fonts, remove_unused_media
from errors import DocScrubError, IoFailure
from image_recompressor import DEFAULT_IMAGE_QUALITY, ImageRecompressor
from package_model import DocxPackage
from results import CommitDecision, FileResult, Outcome, StageResult
from style_cleaner import StyleCleaner

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_optimized"

# Files written by this tool (or its sibling commands) are never re-optimized
GENERATED_FILE_PATTERN = re.compile(r"(_optimized|_rebuilt|_merged|_\d{2,})\.docx$", re.IGNORECASE)

# camelCase spellings accepted in config files
CONFIG_ALIASES = {
    "removeEmbeddedFonts": "remove_embedded_fonts",
    "removeUnusedMedia": "remove_unused_media",
    "recompressImages": "recompress_images",
    "imageQuality": "image_quality",
    "cleanStyles": "clean_styles",
    "imageWorkers": "image_workers",
}


@dataclass
class OptimizeOptions:
    """Recognized optimizer options."""
    remove_embedded_fonts: bool = False
    remove_unused_media: bool = False
    recompress_images: bool = False
    image_quality: int = DEFAULT_IMAGE_QUALITY
    clean_styles: bool = True
    overwrite: bool = False
    force: bool = False
    jobs: int = 1
    image_workers: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.image_quality, bool) or not isinstance(self.image_quality, int):
            raise ValueError(f"image_quality must be an integer, got {self.image_quality!r}")
        if not 1 <= self.image_quality <= 100:
            raise ValueError(f"image_quality must be between 1 and 100, got {self.image_quality}")
        if isinstance(self.jobs, bool) or not isinstance(self.jobs, int):
            raise ValueError(f"jobs must be an integer, got {self.jobs!r}")
        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {self.jobs}")
        if self.image_workers is not None and (
                isinstance(self.image_workers, bool) or not isinstance(self.image_workers, int)
                or self.image_workers < 1):
            raise ValueError(f"image_workers must be a positive integer, got {self.image_workers!r}")

    @classmethod
    def from_config(cls, config: Optional[dict], **overrides) -> "OptimizeOptions":
        """Build options from a config mapping; explicit overrides win."""
        if config is not None and not isinstance(config, dict):
            raise ValueError(f"optimize config must be a mapping, got {type(config).__name__}")
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (config or {}).items():
            name = CONFIG_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown optimize option: {key}")
            values[name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class DocxOptimizer:
    """Optimizes one package at a time according to OptimizeOptions."""

    def __init__(self, options: Optional[OptimizeOptions] = None):
        self.options = options or OptimizeOptions()
        self.style_cleaner = StyleCleaner()
        self.recompressor = ImageRecompressor(self.options.image_quality,
                                              max_workers=self.options.image_workers)

    def stages(self) -> list[tuple[str, Callable[[DocxPackage], StageResult]]]:
        """Enabled stages, in the order they must run."""
        enabled = []
        if self.options.remove_embedded_fonts:
            enabled.append(("fonts", remove_embedded_fonts))
        if self.options.remove_unused_media:
            enabled.append(("media", remove_unused_media))
        if self.options.recompress_images:
            enabled.append(("images", self.recompressor.run))
        if self.options.clean_styles:
            enabled.append(("styles", self.style_cleaner.clean))
        return enabled

    def run_stages(self, package: DocxPackage) -> list[StageResult]:
        results = []
        for name, stage in self.stages():
            logger.info("  -> Stage %s", name)
            result = stage(package)
            if not result.changed:
                logger.info("     %s: %s", name, result.reason)
            results.append(result)
        return results

    def optimize_bytes(self, data: bytes) -> tuple[bytes, list[StageResult]]:
        """Run every enabled stage over archive bytes and return the regenerated archive."""
        package = DocxPackage.load(data)
        stage_results = self.run_stages(package)
        return package.serialize(), stage_results

    def process(self, input_path: Path) -> FileResult:
        """
        Optimize one file and commit the result if it is smaller.

        Never raises for a per-file failure; the failure is reported in the
        returned FileResult instead.
        """
        input_path = Path(input_path)
        result = FileResult(input_path=input_path)
        logger.info("--- Optimizing: %s ---", input_path.name)

        try:
            try:
                original = input_path.read_bytes()
            except OSError as e:
                raise IoFailure(input_path, str(e)) from e

            candidate, result.stages = self.optimize_bytes(original)
            decision = CommitDecision(original_size=len(original), candidate_size=len(candidate))
            result.decision = decision

            if not decision.is_smaller:
                logger.info("Optimization did not result in a smaller file. No file was written.")
                result.outcome = Outcome.NO_IMPROVEMENT
                return result

            output_path = output_path_for(input_path, self.options.overwrite)
            write_atomic(output_path, candidate)
            decision.written = True
            result.output_path = output_path
            result.outcome = Outcome.WRITTEN
            logger.info("Wrote %s (saved %d bytes, %.1f%%)", output_path.name,
                        decision.savings, decision.savings_ratio * 100)

        except DocScrubError as e:
            logger.error("Failed to optimize %s: %s", input_path.name, e)
            result.outcome = Outcome.FAILED
            result.error = str(e)
        except Exception as e:
            logger.exception("Failed to optimize %s", input_path.name)
            result.outcome = Outcome.FAILED
            result.error = f"Processing error: {e}"

        return result


def output_path_for(input_path: Path, overwrite: bool = False) -> Path:
    """Source path when overwriting, otherwise <name>_optimized<ext> beside it."""
    input_path = Path(input_path)
    if overwrite:
        return input_path
    return input_path.with_name(f"{input_path.stem}{OUTPUT_SUFFIX}{input_path.suffix}")


def write_atomic(path: Path, data: bytes):
    """Replace path with data in one step, via a temp file in the same folder."""
    path = Path(path)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(dir=path.parent, prefix=f".{path.stem}_",
                                         suffix=".tmp", delete=False) as tmp:
            tmp_name = tmp.name
            tmp.write(data)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise IoFailure(path, str(e)) from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def is_generated_file(path: Path) -> bool:
    return bool(GENERATED_FILE_PATTERN.search(Path(path).name))


def collect_docx_files(path: Path) -> list[Path]:
    """
    Files to optimize for a path: the file itself if it is a .docx, or every
    non-generated .docx directly inside a directory.
    """
    path = Path(path)
    if path.is_file():
        return [path] if path.suffix.lower() == ".docx" else []
    if path.is_dir():
        return sorted(
            p for p in path.iterdir()
            if p.is_file() and p.suffix.lower() == ".docx" and not is_generated_file(p)
        )
    raise IoFailure(path, "No such file or directory")


def optimize_batch(paths: Iterable[Path], options: Optional[OptimizeOptions] = None) -> list[FileResult]:
    """Optimize many files. Files share no state, so jobs > 1 runs them in parallel."""
    options = options or OptimizeOptions()
    optimizer = DocxOptimizer(options)
    paths = list(paths)
    if options.jobs > 1 and len(paths) > 1:
        with ThreadPoolExecutor(max_workers=options.jobs) as executor:
            return list(executor.map(optimizer.process, paths))
    return [optimizer.process(path) for path in paths]
