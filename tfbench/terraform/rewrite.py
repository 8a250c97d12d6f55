"""
Reduced single-type configurations for isolation measurements.

The workspace configuration is cut down to the blocks needed to refresh
one resource type against a filtered local state:

    variable    kept as-is
    terraform   kept without backend/cloud blocks, and with
                required_providers limited to the type's provider
    provider    kept only for the type's provider; attributes that
                reference variables are replaced with literal values
                evaluated by `terraform console`

Everything else (resources, data sources, modules, outputs, locals) is
dropped.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from ..core.exceptions import ExecutionError, RewriteError
from ..core.runner import CommandRunner
from . import hcl

logger = logging.getLogger("tfbench.terraform.rewrite")

KEPT_BLOCK_TYPES = ("variable", "provider", "terraform")
STRIPPED_TERRAFORM_BLOCKS = ("backend", "cloud")

REDACTED_VALUES = ("(sensitive)", "(sensitive value)")
UNKNOWN_VALUES = ("(known after apply)", "(unknown)")


def provider_prefix(resource_type: str) -> str:
    """Provider name implied by a resource type ("aws_s3_bucket" -> "aws")."""
    return resource_type.split("_", 1)[0]


class ExpressionEvaluator:
    """Evaluates expressions in the workspace with `terraform console`.

    A redacted result is retried once wrapped in nonsensitive(); anything
    still redacted or unknown after that is an error.
    """

    def __init__(
        self,
        runner: CommandRunner,
        workspace: Union[str, Path] = ".",
        var_file: Optional[Union[str, Path]] = None,
    ):
        self.runner = runner
        self.workspace = workspace
        self.var_file = var_file
        self._cache: dict[str, str] = {}

    def _console(self, expr: str) -> str:
        args = ["console"]
        if self.var_file:
            args.append(f"-var-file={self.var_file}")
        try:
            out = self.runner.run(*args, cwd=self.workspace, input=expr, merge_stderr=False)
        except ExecutionError as e:
            raise RewriteError("", f"`terraform console` failed for {expr!r}: {e}") from e
        return out.decode(errors="replace").strip()

    def evaluate(self, expr: str) -> str:
        """Return the value of `expr` as an HCL literal.

        Raises:
            RewriteError: console failed, or the value stays redacted or unknown
        """
        if expr in self._cache:
            return self._cache[expr]

        value = self._console(expr)
        if value in REDACTED_VALUES:
            logger.debug(f"{expr!r} is sensitive, retrying with nonsensitive()")
            value = self._console(f"nonsensitive({expr})")
            if value in REDACTED_VALUES:
                raise RewriteError("", f"value of {expr!r} is still redacted")
        if not value or value in UNKNOWN_VALUES:
            raise RewriteError("", f"value of {expr!r} is not known ({value or 'empty output'})")

        self._cache[expr] = value
        return value


class ConfigurationRewriter:
    """Builds the reduced configuration for one resource type.

    Args:
        evaluator: Resolves provider attributes to literals
        rewrite_provider_attributes: Replace referencing provider attributes
            with evaluated literals (needs terraform >= 0.15)
    """

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator],
        rewrite_provider_attributes: bool = True,
    ):
        self.evaluator = evaluator
        self.rewrite_provider_attributes = rewrite_provider_attributes

    def _reduce_terraform_block(self, block: hcl.Block, prefix: str) -> None:
        for nested in block.body.blocks():
            if nested.type in STRIPPED_TERRAFORM_BLOCKS:
                block.body.remove_block(nested)
            elif nested.type == "required_providers":
                for name in list(nested.body.attributes()):
                    if name != prefix:
                        nested.body.remove_attribute(name)

    def _resolve_provider_block(self, block: hcl.Block, resource_type: str) -> None:
        for name, attribute in block.body.attributes().items():
            if not hcl.references(attribute.expr):
                continue
            if self.evaluator is None:
                raise RewriteError(resource_type, f"no evaluator for provider attribute {name!r}")
            try:
                value = self.evaluator.evaluate(attribute.expr)
            except RewriteError as e:
                raise RewriteError(resource_type, e.details) from e
            logger.debug(f"provider {block.labels[0]}: {name} = {attribute.expr} resolved")
            block.body.set_attribute(name, value)

    def rewrite(self, resource_type: str, sources: Iterable[tuple[str, str]]) -> str:
        """Build the reduced configuration from (filename, text) pairs.

        Raises:
            RewriteError: a file cannot be scanned or an attribute cannot be evaluated
        """
        prefix = provider_prefix(resource_type)
        kept: list[hcl.Block] = []

        for filename, text in sources:
            try:
                body = hcl.parse(text, filename)
            except hcl.HCLSyntaxError as e:
                raise RewriteError(resource_type, f"parsing tf file {filename}: {e}") from e

            for block in body.blocks():
                if block.type not in KEPT_BLOCK_TYPES:
                    continue
                if block.type == "terraform":
                    self._reduce_terraform_block(block, prefix)
                elif block.type == "provider":
                    if not block.labels or block.labels[0] != prefix:
                        continue
                    if self.rewrite_provider_attributes:
                        self._resolve_provider_block(block, resource_type)
                kept.append(block)

        return hcl.render(kept)

    def rewrite_directory(self, resource_type: str, directory: Union[str, Path]) -> str:
        """Build the reduced configuration from the *.tf files of a directory."""
        sources = []
        for path in sorted(Path(directory).glob("*.tf")):
            try:
                sources.append((path.name, path.read_text()))
            except OSError as e:
                raise RewriteError(resource_type, f"could not read tf file {path}: {e}") from e
        return self.rewrite(resource_type, sources)
