"""Module discovery, filtering and initialization.

A module is a Python module exposing ``module(api)``; it may also define
``__version__`` (or ``version``) and ``skip = True``. Built-in core modules
live in :mod:`loadprobe.core_modules` and are always loaded first. Third
party modules are discovered in :mod:`loadprobe.modules` and in any extra
directories, where each ``<name>.py`` file or ``<name>/`` package is a
module.

Every initialized module receives its own capability façade built by the
``api_factory``; the registry never hands out anything else.
"""

import importlib
import importlib.util
import logging
import pkgutil
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import ModuleResolutionError

logger = logging.getLogger(__name__)

CORE_MODULES_PACKAGE = "loadprobe.core_modules"
DEFAULT_MODULES_PACKAGE = "loadprobe.modules"

ApiFactory = Callable[[str], Any]


class ModuleDescriptor(BaseModel):
    """A resolved module, ready to be initialized."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    version: Optional[str] = None
    skip: bool = False
    source: str = Field(description="Package or directory the module came from")
    setup: Callable[[Any], Any] = Field(exclude=True)


def describe(name: str, pkg: ModuleType, source: str) -> ModuleDescriptor:
    """Build a descriptor from an imported module.

    Raises:
        ModuleResolutionError: If the module has no callable ``module`` entry point
    """
    setup = getattr(pkg, "module", None)
    if not callable(setup):
        raise ModuleResolutionError(name, "no callable 'module' entry point")

    version = getattr(pkg, "__version__", None) or getattr(pkg, "version", None)
    return ModuleDescriptor(
        name=name,
        version=str(version) if version is not None else None,
        skip=bool(getattr(pkg, "skip", False)),
        source=source,
        setup=setup,
    )


class ModuleRegistry:
    """Loads modules with least privilege.

    Resolution problems of third party modules are logged and the module is
    skipped; the run carries on with the remaining modules.
    """

    def __init__(
        self,
        api_factory: ApiFactory,
        skip_modules: Iterable[str] = (),
        core_package: str = CORE_MODULES_PACKAGE,
        default_package: str = DEFAULT_MODULES_PACKAGE,
    ):
        self._api_factory = api_factory
        self.skip_modules = set(skip_modules)
        self.core_package = core_package
        self.default_package = default_package

        self.initialized: List[ModuleDescriptor] = []
        self.skipped: List[str] = []
        self.failed: Dict[str, str] = {}

    # loading

    def load_core(self, names: Iterable[str]) -> None:
        """Load built-in modules unconditionally, in the given order.

        Core modules are part of the tool; failing to load one is fatal.
        """
        logger.debug("Loading core modules...")
        for name in names:
            pkg = importlib.import_module(f"{self.core_package}.{name}")
            descriptor = describe(name, pkg, self.core_package)
            self._initialize(descriptor, kind="Core module")

    def load_discovered(
        self,
        explicit: Optional[Iterable[str]] = None,
        search_paths: Iterable[Union[str, Path]] = (),
    ) -> None:
        """Load the explicit module list, or everything discoverable.

        Without an explicit list every module of the default package is
        loaded in discovery order. Modules found in ``search_paths`` are
        loaded afterwards, directory by directory.
        """
        names = list(explicit or []) or self.list_modules()
        for name in names:
            self.add_module(name)

        for directory in search_paths:
            dir_path = Path(directory).resolve()
            for name in self.list_modules_in_dir(dir_path):
                self.add_module_in_dir(dir_path, name)

    def add_module(self, name: str) -> bool:
        """Load a module from the default package."""
        return self._add(name, lambda: self._import_from_package(name))

    def add_module_in_dir(self, directory: Union[str, Path], name: str) -> bool:
        """Load a module from a directory outside the package."""
        return self._add(name, lambda: self._import_from_dir(Path(directory), name))

    def _add(self, name: str, resolve: Callable[[], ModuleDescriptor]) -> bool:
        if name in self.skip_modules:
            logger.info(f"Module {name} skipped!")
            self.skipped.append(name)
            return False

        try:
            descriptor = resolve()
        except ModuleResolutionError as e:
            logger.warning(str(e))
            self.failed[name] = e.reason
            return False

        if descriptor.skip:
            logger.info(f"Module {name} skipped!")
            self.skipped.append(name)
            return False

        try:
            self._initialize(descriptor, kind="Module")
        except Exception as e:
            logger.exception(f"Module {name} failed to initialize")
            self.failed[name] = str(e)
            return False

        return True

    def _initialize(self, descriptor: ModuleDescriptor, kind: str) -> None:
        descriptor.setup(self._api_factory(descriptor.name))
        self.initialized.append(descriptor)

        version = f" v{descriptor.version}" if descriptor.version else ""
        logger.info(f"{kind} {descriptor.name}{version} initialized")

    # resolution

    def _import_from_package(self, name: str) -> ModuleDescriptor:
        qualified = f"{self.default_package}.{name}"
        try:
            pkg = importlib.import_module(qualified)
        except ImportError as e:
            raise ModuleResolutionError(name, f"cannot import {qualified} ({e})") from e
        except Exception as e:
            raise ModuleResolutionError(name, f"error while importing {qualified} ({e!r})") from e
        return describe(name, pkg, self.default_package)

    def _import_from_dir(self, directory: Path, name: str) -> ModuleDescriptor:
        candidate = directory / name / "__init__.py"
        if not candidate.is_file():
            candidate = directory / f"{name}.py"
        if not candidate.is_file():
            raise ModuleResolutionError(name, f"not found in {directory}")

        qualified = f"loadprobe_external.{directory.name}.{name}"
        spec = importlib.util.spec_from_file_location(qualified, candidate)
        if spec is None or spec.loader is None:
            raise ModuleResolutionError(name, f"cannot build import spec for {candidate}")

        pkg = importlib.util.module_from_spec(spec)
        sys.modules[qualified] = pkg
        try:
            spec.loader.exec_module(pkg)
        except Exception as e:
            sys.modules.pop(qualified, None)
            raise ModuleResolutionError(name, f"error while importing {candidate} ({e!r})") from e

        return describe(name, pkg, str(directory))

    # discovery

    def list_modules(self) -> List[str]:
        """Names of modules in the default package, sorted."""
        try:
            package = importlib.import_module(self.default_package)
        except ImportError:
            logger.warning(f"Default modules package {self.default_package} not found")
            return []

        logger.debug(f"Getting the list of all modules in {self.default_package}...")
        return sorted(
            info.name
            for info in pkgutil.iter_modules(package.__path__)
            if not info.name.startswith("_")
        )

    def list_modules_in_dir(self, directory: Union[str, Path]) -> List[str]:
        """Names of modules found in ``directory``, sorted."""
        directory = Path(directory)
        logger.debug(f"Getting the list of all modules in {directory}...")
        if not directory.is_dir():
            logger.warning(f"Modules directory not found: {directory}")
            return []

        names = []
        for entry in sorted(directory.iterdir()):
            if entry.name.startswith(("_", ".")):
                continue
            if entry.is_file() and entry.suffix == ".py":
                names.append(entry.stem)
            elif entry.is_dir() and (entry / "__init__.py").is_file():
                names.append(entry.name)
        return names

    def inspect_modules(self, search_paths: Iterable[Union[str, Path]] = ()) -> List[ModuleDescriptor]:
        """Resolve every discoverable module without initializing it.

        Modules that fail to resolve are recorded in ``failed`` and left out.
        """
        descriptors = []
        candidates = [(name, lambda n=name: self._import_from_package(n)) for name in self.list_modules()]
        for directory in search_paths:
            dir_path = Path(directory).resolve()
            candidates.extend(
                (name, lambda d=dir_path, n=name: self._import_from_dir(d, n))
                for name in self.list_modules_in_dir(dir_path)
            )

        for name, resolve in candidates:
            try:
                descriptors.append(resolve())
            except ModuleResolutionError as e:
                logger.warning(str(e))
                self.failed[name] = e.reason
        return descriptors

    def get_status(self) -> Dict[str, Dict[str, Any]]:
        """Status of every module seen during loading."""
        status: Dict[str, Dict[str, Any]] = {}
        for descriptor in self.initialized:
            status[descriptor.name] = {
                "initialized": True,
                "version": descriptor.version,
                "source": descriptor.source,
            }
        for name in self.skipped:
            status[name] = {"initialized": False, "skipped": True}
        for name, reason in self.failed.items():
            status[name] = {"initialized": False, "error": reason}
        return status
