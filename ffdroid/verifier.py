import os
import re
from dataclasses import dataclass, field
from .cli_logger import logger
from .errors import VerificationError
from .utils import run_shell_command
from .builders.fftools import LIBRARY_NAME, ENTRY_SYMBOL

REQUIRED_CONFIG_LINES = ("CONFIG_LIBDAV1D 1", "CONFIG_LIBDAV1D_DECODER 1")

# character-set conversion must not leak into the release libraries
FORBIDDEN_SYMBOL = re.compile(r"^(?:lib)?iconv(?:_\w+)?$")

NEEDED_ENTRY = re.compile(r"\(NEEDED\).*\[(?P<name>[^\]]+)\]")


@dataclass(frozen=True)
class Symbol:
    name: str
    bind: str
    visibility: str
    section: str

    @property
    def undefined(self):
        return self.section == "UND"


@dataclass
class VerificationReport:
    abi: str
    accepted: bool = False
    needed: dict = field(default_factory=dict)
    problems: list = field(default_factory=list)


def parse_readelf_symbols(output):
    """Parse ``readelf -Ws`` output into Symbol records."""
    symbols = []
    for raw_line in output.splitlines():
        parts = raw_line.split()
        if len(parts) < 8:
            continue
        number_token = parts[0]
        if not number_token.endswith(":") or not number_token[:-1].isdigit():
            continue
        name = parts[7].split("@", 1)[0]
        if name:
            symbols.append(Symbol(name, parts[4].upper(), parts[5].upper(), parts[6].upper()))
    return symbols


def parse_needed(output):
    return [match.group("name") for match in NEEDED_ENTRY.finditer(output)]


def _readelf(readelf, flag, path, abi):
    stdout, stderr, returncode = run_shell_command([readelf, flag, path])
    if returncode != 0:
        raise VerificationError(f"readelf {flag} failed for {path}: {stderr.strip()}", abi=abi)
    return stdout


def forbidden_references(symbols):
    return sorted({s.name for s in symbols if s.undefined and FORBIDDEN_SYMBOL.match(s.name)})


def exports_symbol(symbols, name):
    return any(
        s.name == name and not s.undefined and s.bind in {"GLOBAL", "WEAK"} and s.visibility not in {"HIDDEN", "INTERNAL"}
        for s in symbols
    )


def check_decoder_config(config_header):
    """Problems with the dav1d entries of FFmpeg's config.h, if any."""
    if not os.path.isfile(config_header):
        return [f"config.h not found at {config_header}"]
    with open(config_header, "r", errors="replace") as f:
        content = f.read()
    return [f"'{line}' missing from {config_header}" for line in REQUIRED_CONFIG_LINES if line not in content]


def verify_artifacts(artifacts, toolchain):
    """Check an artifact set before it may be staged.

    Raises VerificationError listing every problem found; on success returns
    an accepted VerificationReport with the NEEDED entries of each library.
    """
    abi = artifacts.abi
    report = VerificationReport(abi=abi)
    logger.info(f"  - Verifying {len(artifacts.libraries)} artifacts for {abi}...")

    report.problems.extend(check_decoder_config(artifacts.config_header))
    if not report.problems:
        logger.info("    - libdav1d decoder verified in config.h")

    names = [os.path.basename(path) for path in artifacts.libraries]
    if not any(name.startswith("libav") for name in names):
        report.problems.append(f"No libav*.so files produced for {abi}")
    if LIBRARY_NAME not in names:
        report.problems.append(f"{LIBRARY_NAME} was not produced for {abi}")

    for path in artifacts.libraries:
        name = os.path.basename(path)
        symbols = parse_readelf_symbols(_readelf(toolchain.readelf, "-Ws", path, abi))
        leaked = forbidden_references(symbols)
        if leaked:
            report.problems.append(f"{name} still references {', '.join(leaked)}")
        if name == LIBRARY_NAME and not exports_symbol(symbols, ENTRY_SYMBOL):
            report.problems.append(f"{name} does not export {ENTRY_SYMBOL}")
        report.needed[name] = parse_needed(_readelf(toolchain.readelf, "-d", path, abi))

    for name, needed in report.needed.items():
        logger.step_info(f"--- {name}: NEEDED {', '.join(needed) or '(none)'}", indent=4)

    if report.problems:
        for problem in report.problems:
            logger.error(f"    - {problem}")
        raise VerificationError(
            f"{len(report.problems)} problem(s) found in build output", abi=abi, problems=report.problems
        )

    report.accepted = True
    logger.success(f"  - Verification passed for {abi}")
    return report
