"""Drive one buildgen run: walk, generate, resolve, merge and emit."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional

from .buildfile import CallExpr, File
from .config import Config, StructureMode
from .directives import excluded_names, parse_directives
from .emit import Emitter, fix_emit
from .labels import Labeler
from .languages import SourceClassifier, get_classifier
from .logging import get_logger
from .merger import MergeContext, merge_file
from .models import Package
from .resolve import ExternalResolver, Resolver
from .rules import Generator
from .walker import walk


@dataclass
class VisitRecord:
    """Rules generated for one package directory, waiting to be resolved and merged."""

    pkg_rel: str
    # Directory of the build file the rules go to; the root in flat mode.
    build_rel: str
    config: Config
    directory: Path
    rules: List[CallExpr] = field(default_factory=list)
    empty: List[CallExpr] = field(default_factory=list)
    old_file: Optional[File] = None
    excluded: FrozenSet[str] = frozenset()


@dataclass
class _Visit:
    rel: str
    config: Config
    package: Optional[Package]
    old_file: Optional[File]
    is_update_dir: bool


class Orchestrator:
    """Coordinates a run over the directories named in the configuration."""

    def __init__(
        self,
        emitter: Emitter | None = None,
        external: ExternalResolver | None = None,
        classifier: SourceClassifier | None = None,
    ) -> None:
        self.emitter = emitter or fix_emit
        self.external = external
        self.classifier = classifier
        self.logger = get_logger("orchestrator")

    def run(self, config: Config) -> List[Path]:
        """Update build files under ``config.dirs``; return the paths handed to the emitter."""
        self.logger.info("Updating build files under %s", config.repo_root)
        classifier = self.classifier or get_classifier(config.language)
        labeler = Labeler(config)

        visits: List[_Visit] = []

        def record(rel: str, dir_config: Config, package: Optional[Package], old_file: Optional[File], is_update_dir: bool) -> None:
            visits.append(_Visit(rel, dir_config, package, old_file, is_update_dir))

        walk(config, record, classifier=classifier)
        self.logger.debug("Walked %d directories", len(visits))

        if config.structure_mode == StructureMode.FLAT:
            records = self._generate_flat(config, labeler, visits)
        else:
            records = self._generate_hierarchical(labeler, visits)

        resolver = Resolver(config, labeler, self.external)
        for visit in records:
            for rule in visit.rules:
                resolver.resolve_rule(rule, visit.pkg_rel, visit.build_rel, visit.config)

        if config.structure_mode == StructureMode.FLAT:
            root = next((v for v in visits if v.rel == ""), None)
            return self._emit_flat(config, records, root)
        emitted: List[Path] = []
        for visit in records:
            path = self._merge_and_emit(
                visit.config,
                File(path=visit.directory / visit.config.default_build_file_name, stmts=list(visit.rules)),
                visit.old_file,
                visit.empty,
                MergeContext(config=visit.config, directory=visit.directory, excluded=visit.excluded),
            )
            if path is not None:
                emitted.append(path)
        return emitted

    # ---- Generation ----------------------------------------------------------

    def _generate_hierarchical(self, labeler: Labeler, visits: List[_Visit]) -> List[VisitRecord]:
        records: List[VisitRecord] = []
        for visit in visits:
            if visit.package is None:
                continue
            generator = Generator(visit.config, labeler, visit.rel, visit.old_file)
            rules, empty = generator.generate_rules(visit.package)
            records.append(
                VisitRecord(
                    pkg_rel=visit.rel,
                    build_rel=visit.rel,
                    config=visit.config,
                    directory=visit.package.dir,
                    rules=rules,
                    empty=empty,
                    old_file=visit.old_file,
                    excluded=frozenset(excluded_names(parse_directives(visit.old_file))),
                )
            )
        return records

    def _generate_flat(self, config: Config, labeler: Labeler, visits: List[_Visit]) -> List[VisitRecord]:
        root_file = next((v.old_file for v in visits if v.rel == ""), None)
        records: List[VisitRecord] = []
        for visit in sorted(visits, key=lambda v: v.rel):
            if visit.package is None:
                continue
            generator = Generator(visit.config, labeler, "", root_file)
            rules, empty = generator.generate_rules(visit.package)
            excluded = {
                posixpath.join(visit.rel, name) if visit.rel else name
                for name in excluded_names(parse_directives(visit.old_file))
            }
            records.append(
                VisitRecord(
                    pkg_rel=visit.rel,
                    build_rel="",
                    config=visit.config,
                    directory=config.repo_root,
                    rules=rules,
                    empty=empty,
                    old_file=root_file,
                    excluded=frozenset(excluded),
                )
            )
        return records

    # ---- Merge and emit ------------------------------------------------------

    def _emit_flat(self, config: Config, records: List[VisitRecord], root: Optional[_Visit]) -> List[Path]:
        root_config = root.config if root is not None else config
        old_file = root.old_file if root is not None else None
        if root is not None and not root.is_update_dir:
            return []
        rules: List[CallExpr] = []
        empty: List[CallExpr] = []
        excluded: set = set()
        for record in records:
            rules.extend(record.rules)
            empty.extend(record.empty)
            excluded.update(record.excluded)
        gen_file = File(path=config.repo_root / root_config.default_build_file_name, stmts=rules)
        context = MergeContext(config=root_config, directory=config.repo_root, excluded=frozenset(excluded))
        path = self._merge_and_emit(root_config, gen_file, old_file, empty, context)
        return [path] if path is not None else []

    def _merge_and_emit(
        self,
        config: Config,
        gen_file: File,
        old_file: Optional[File],
        empty: List[CallExpr],
        context: MergeContext,
    ) -> Optional[Path]:
        if old_file is None and not gen_file.stmts:
            return None
        merged = merge_file(gen_file, old_file, empty, context)
        if merged is None:
            return None
        try:
            self.emitter(config, merged)
        except OSError as exc:
            self.logger.error("%s: %s", merged.path, exc)
            return None
        return Path(merged.path)


__all__ = ["Orchestrator", "VisitRecord"]
