import filecmp
import os
import shutil
from .cli_logger import logger
from .config import VERSION_MARKER
from .errors import BuildError, VerificationError
from .artifacts import write_version_marker


class Stager:
    """Copies verified artifact sets into the consolidated output tree.

    The first ABI staged provides the shared ``include/`` tree. Headers of
    later ABIs are compared against it and differences are reported as
    warnings.
    """

    def __init__(self, output_dir):
        self.output_dir = output_dir
        self.reference_include_dir = None
        self.staged = []

    def reset(self):
        """Remove any previous output and start from an empty tree."""
        if os.path.exists(self.output_dir):
            shutil.rmtree(self.output_dir)
        os.makedirs(self.output_dir)

    def abi_dir(self, abi):
        return os.path.join(self.output_dir, abi)

    def stage(self, artifacts, report):
        abi = artifacts.abi
        if report is None or not report.accepted or report.abi != abi:
            raise VerificationError("Refusing to stage artifacts without an accepted verification report", abi=abi)
        if not artifacts.libraries:
            raise VerificationError("No artifacts to stage", abi=abi)
        if not os.path.isdir(artifacts.include_dir):
            raise VerificationError(f"Public headers not found at {artifacts.include_dir}", abi=abi)

        destination = self.abi_dir(abi)
        partial = os.path.join(self.output_dir, f".{abi}.partial")
        # the first ABI staged also publishes the shared include/ tree
        shares_headers = self.reference_include_dir is None
        include_dest = os.path.join(self.output_dir, "include")
        include_partial = os.path.join(self.output_dir, ".include.partial")
        published = False
        for leftover in (partial, include_partial):
            shutil.rmtree(leftover, ignore_errors=True)
        try:
            lib_dir = os.path.join(partial, "lib")
            os.makedirs(lib_dir)
            for path in artifacts.libraries:
                shutil.copy2(path, os.path.join(lib_dir, os.path.basename(path)))
                logger.step_info(f"staged: {abi}/lib/{os.path.basename(path)}", indent=4)
            write_version_marker(partial, artifacts.version, VERSION_MARKER)
            if shares_headers:
                shutil.copytree(artifacts.include_dir, include_partial)

            if os.path.exists(destination):
                shutil.rmtree(destination)
            os.replace(partial, destination)
            published = True
            if shares_headers:
                if os.path.exists(include_dest):
                    shutil.rmtree(include_dest)
                os.replace(include_partial, include_dest)
        except OSError as e:
            if published:
                shutil.rmtree(destination, ignore_errors=True)
            raise BuildError(f"Staging into {destination} failed: {e}", abi=abi)
        finally:
            for leftover in (partial, include_partial):
                shutil.rmtree(leftover, ignore_errors=True)

        if shares_headers:
            self.reference_include_dir = artifacts.include_dir
            logger.info(f"  - Copied public headers from {abi}")
        else:
            self._compare_headers(artifacts)
        self.staged.append(abi)
        logger.success(f"  - Staged {len(artifacts.libraries)} libraries for {abi} into {destination}")
        return destination

    def _compare_headers(self, artifacts):
        differences = diff_trees(self.reference_include_dir, artifacts.include_dir)
        if differences:
            logger.warning(
                f"  - Headers of {artifacts.abi} differ from the staged include tree: {', '.join(differences[:10])}"
            )

    def write_package_version(self, version):
        return write_version_marker(self.output_dir, version, VERSION_MARKER)


def diff_trees(left, right):
    """Relative paths that are missing from either tree or differ in content."""
    differences = []

    def _walk(comparison, prefix):
        for name in comparison.left_only + comparison.right_only + comparison.diff_files + comparison.funny_files:
            differences.append(os.path.join(prefix, name))
        for name, sub in sorted(comparison.subdirs.items()):
            _walk(sub, os.path.join(prefix, name))

    _walk(filecmp.dircmp(left, right), "")
    return sorted(differences)
