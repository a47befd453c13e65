from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

from setuptools import Command, find_packages, setup

ROOT = Path(__file__).resolve().parent
PYPROJECT = ROOT / "pyproject.toml"
MIN_PYTHON = (3, 11)


def _warn_if_below_min_python() -> None:
    if sys.version_info < MIN_PYTHON:
        logging.warning(
            "querydiff targets Python %d.%d+ (running %d.%d); "
            "the config loader needs tomllib.",
            MIN_PYTHON[0],
            MIN_PYTHON[1],
            sys.version_info.major,
            sys.version_info.minor,
        )


def _project_version() -> str:
    import tomllib

    with PYPROJECT.open("rb") as fh:
        data = tomllib.load(fh)
    return data["project"]["version"]


_warn_if_below_min_python()


class TestCommand(Command):
    description = "Run unit tests"
    user_options = [("verbose", "v", "produce verbose output"), ("testmodule=", "t", "test module name")]
    boolean_options = ["verbose"]

    def initialize_options(self):
        self.verbose = 0
        self.testmodule = None

    def finalize_options(self):
        pass

    def run(self):
        """
        Runs every test module in tests/ (or the one named with -t)
        through pytest and exits with its status
        """
        import pytest

        args = [self.testmodule or "tests"]
        if self.verbose:
            args.append("-v")
        raise SystemExit(pytest.main(args))


class PrintVersion(Command):
    user_options = []

    def initialize_options(self):
        self.version = None

    def finalize_options(self):
        self.version = _project_version()

    def run(self):
        print(self.version)


class DataFrameCheckCommand(Command):
    description = "Run a Polars export smoke check"
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        try:
            import polars  # noqa: F401
        except ImportError as exc:
            raise SystemExit(
                "dataframecheck requires optional dependencies. "
                "Install with: pip install 'querydiff[dataframe]'"
            ) from exc

        from io import BytesIO

        from querydiff.codec.annotated_csv import AnnotatedCSVDecoder
        from querydiff.export import results_to_dataframe

        payload = b"#datatype,string,long,long\n,result,table,x\n,,0,1\n,,0,2\n,,0,3\n"
        frame = results_to_dataframe(AnnotatedCSVDecoder().decode(BytesIO(payload)))
        got = frame["x"].sum()
        if got != 6:
            raise SystemExit(f"Unexpected export result: {got}")

        print("dataframecheck: ok")


class CleanCommand(Command):
    """
    Remove build output and interpreter caches
    ==========================================

    Deletes build/, dist/, the egg-info directory, pytest's cache and every
    __pycache__ directory under src/ and tests/.
    """

    description = "remove build output and caches"
    user_options = []
    BUILD_DIRS = ("build", "dist", "src/querydiff.egg-info", ".pytest_cache")
    CACHE_ROOTS = ("src", "tests")

    def initialize_options(self):
        self.targets = []

    def finalize_options(self):
        targets = [ROOT / name for name in self.BUILD_DIRS]
        for name in self.CACHE_ROOTS:
            targets.extend(sorted((ROOT / name).rglob("__pycache__")))
        self.targets = [path for path in targets if path.exists()]

    def run(self):
        if not self.targets:
            logging.info("Nothing to clean")
        for path in self.targets:
            if self.dry_run:
                logging.info("Would have removed %s", path)
                continue
            self.announce("Removing %s" % path, level=2)
            shutil.rmtree(path, ignore_errors=True)


setup(
    package_dir={"": "src"},
    packages=find_packages("src", include=["querydiff", "querydiff.*"]),
    package_data={"querydiff.config": ["*.toml"]},
    cmdclass={
        "clean": CleanCommand,
        "test": TestCommand,
        "version": PrintVersion,
        "dataframecheck": DataFrameCheckCommand,
    },
)
