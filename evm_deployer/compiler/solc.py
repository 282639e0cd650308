# Author: evm-deployer developers

"""Wrapper around the solc command line compiler."""

import json
import shutil
import tempfile
from pathlib import Path
from subprocess import PIPE, CompletedProcess, TimeoutExpired, run
from time import perf_counter
from typing import Any

import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.compiler.instrumenter import CoverageInstrumenter, InstrumentedSource
from evm_deployer.contract import Contract
from evm_deployer.errors import CompilationFailedError, CompilerNotFoundError
from evm_deployer.log_categories import LogCategories

_SOLC_BANNER: str = "solc, the solidity compiler"


def which_solc() -> Path:
    """Finds solc on the PATH."""
    found: str | None = shutil.which("solc")
    if found is None:
        raise CompilerNotFoundError("solc executable file not found in $PATH")
    return Path(found)


class SolcCompiler:
    """Runs solc with --combined-json and turns the output into Contract
    artifacts. Paths are passed to solc as given, so the file component of
    every src field indexes into the compiler's sourceList."""

    def __init__(
        self,
        solc_path: Path,
        allowed_paths: list[Path] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.solc_path: Path = Path(solc_path)
        self.allowed_paths: list[Path] = allowed_paths or []
        self.timeout: float | None = timeout
        self._logger: BoundLogger = structlog.get_logger(
            self.__class__.__name__
        ).bind(category=LogCategories.COMPILER)
        self.version: str = self.verify()

    def _solc(self, args: list[str], cwd: Path | None = None) -> str:
        cmd: list[str] = [str(self.solc_path)] + args
        self._logger.debug("Running solc: " + " ".join(cmd))

        start_time: float = perf_counter()
        try:
            process: CompletedProcess = run(
                cmd,
                stdout=PIPE,
                stderr=PIPE,
                cwd=cwd,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise CompilerNotFoundError(f"solc not found: {self.solc_path}") from e
        except TimeoutExpired as e:
            raise CompilationFailedError(
                f"solc timed out after {self.timeout}s"
            ) from e
        self._logger.debug(f"solc finished in {perf_counter() - start_time:.2f}s")

        stdout: str = process.stdout.decode("utf-8")
        stderr: str = process.stderr.decode("utf-8")
        if process.returncode != 0:
            raise CompilationFailedError(
                "failed to compile contract code: " + stderr.strip(),
                output=stderr,
            )
        if stderr.strip():
            self._logger.warning(stderr.strip())
        return stdout

    def verify(self) -> str:
        """Checks that the binary is the Solidity compiler and returns its
        version banner."""
        output: str = self._solc(["--version"])
        if not output.startswith(_SOLC_BANNER):
            raise CompilerNotFoundError(
                f"{self.solc_path} is not the solidity compiler: {output.strip()}"
            )
        return output.strip().splitlines()[-1]

    def _allow_paths_args(self) -> list[str]:
        if not self.allowed_paths:
            return []
        return ["--allow-paths", ",".join(str(p) for p in self.allowed_paths)]

    def compile(
        self, source_dir: Path, source_file: str, optimizer_runs: int = 0
    ) -> dict[str, Contract]:
        """Compiles a file and returns every contract it produced, keyed by
        name."""
        args: list[str] = self._allow_paths_args()
        args += ["--combined-json", "bin,abi,ast", str(Path(source_dir) / source_file)]
        if optimizer_runs > 0:
            args += ["--optimize", f"--optimize-runs={optimizer_runs}"]

        output: dict[str, Any] = self._parse_json(self._solc(args, cwd=source_dir))
        return self.contracts_from_output(output)

    def compile_with_coverage(
        self,
        source_dir: Path,
        source_file: str,
        instrumenter: CoverageInstrumenter | None = None,
    ) -> dict[str, Contract]:
        """Compiles in two passes. The first pass only produces the ASTs, they
        are instrumented and fed back to solc with --import-ast."""
        instrumenter = instrumenter or CoverageInstrumenter()

        args: list[str] = self._allow_paths_args()
        args += ["--optimize", "--combined-json", "ast"]
        args.append(str(Path(source_dir) / source_file))
        output: dict[str, Any] = self._parse_json(self._solc(args, cwd=source_dir))

        statements: list[tuple[int, int, int]] = []
        for file_index, path in enumerate(output.get("sourceList", [])):
            source: dict[str, Any] = output["sources"][path]
            ast_key: str = "AST" if "AST" in source else "ast"
            instrumented: InstrumentedSource = instrumenter.instrument(
                source[ast_key], file_index
            )
            source[ast_key] = instrumented.ast
            statements.extend(instrumented.statements)

        with tempfile.NamedTemporaryFile(
            "w", suffix="_sol_coverage.json", delete=False, encoding="utf-8"
        ) as tmp:
            json.dump(output, tmp)
            tmp_path: Path = Path(tmp.name)

        try:
            second: dict[str, Any] = self._parse_json(
                self._solc(
                    [
                        "--import-ast",
                        "--optimize",
                        "--combined-json",
                        "bin,abi",
                        str(tmp_path),
                    ],
                    cwd=source_dir,
                )
            )
        finally:
            tmp_path.unlink(missing_ok=True)

        # The import pass does not repeat the source list.
        second.setdefault("sourceList", output.get("sourceList", []))
        contracts: dict[str, Contract] = self.contracts_from_output(second)
        for contract in contracts.values():
            contract.coverage = True
            contract.statements = list(statements)

        self._logger.info(
            "Compiled with coverage",
            contracts=len(contracts),
            statements=len(statements),
        )
        return contracts

    @staticmethod
    def _parse_json(output: str) -> dict[str, Any]:
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise CompilationFailedError(
                f"failed to parse solc output: {e}", output=output
            ) from e

    def contracts_from_output(self, output: dict[str, Any]) -> dict[str, Contract]:
        """Builds Contract artifacts from solc combined JSON output."""
        raw_contracts: dict[str, Any] = output.get("contracts") or {}
        if not raw_contracts:
            raise CompilationFailedError("solc: no contracts compiled")

        all_paths: list[str] = list(output.get("sourceList", []))
        version: str = output.get("version", self.version)

        contracts: dict[str, Contract] = {}
        for contract_id, values in raw_contracts.items():
            path, sep, name = contract_id.rpartition(":")
            if not sep:
                raise CompilationFailedError(f"unexpected contract id: {contract_id}")

            abi: Any = values.get("abi", [])
            # Older compilers emit the ABI as an embedded JSON string.
            if isinstance(abi, str):
                abi = json.loads(abi)

            contracts[name] = Contract(
                name=name,
                source_path=path,
                all_paths=all_paths or [path],
                compiler_version=version,
                abi=abi,
                bin=values.get("bin", ""),
            )
        return contracts
