"""Merge orchestration.

A :class:`MergeSession` moves a donor level's selected entities into a
target level through the states::

    INIT -> IMPORT_RESOURCES -> IMPORT_MODELS -> IMPORT_INSTANCES
         -> RESOLVE -> VALIDATE [-> REPAIR -> REVALIDATE] -> FINALIZE

Fatal conditions are checked in ``INIT`` before the target is touched.
Skippable errors are counted per entity and never abort the session. At most
one repair pass runs; violations left after it are reported and the level
is not handed to the saver.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from ..errors import (
    E_MISSING_SOURCE,
    E_MODEL_MISSING,
    FatalMergeError,
    ModelNotFoundError,
    SkippableError,
    fatal_error,
)
from ..level.models import (
    Instance,
    Level,
    Model,
    NS_INSTANCE,
    NS_MODEL,
    NS_PARAM,
    NS_RESOURCE,
    NS_SPLINE,
    Ref,
    Resource,
    Spline,
)
from ..level.validator import Violation, validate
from ..logging import get_logger
from ..reporting import get_reporter, task
from .allocator import IdAllocator
from .dedup import ResourceDeduplicator, SignatureFn, texture_signature
from .options import DEFAULT_NAMESPACES, MergeOptions, NamespaceConfig
from .repair import repair
from .report import MergeReport
from .resolver import resolve

__all__ = [
    "MergeState",
    "LevelSaver",
    "MergeSession",
    "merge_levels",
    "finalize",
]

log = get_logger("merge")


class MergeState(Enum):
    INIT = auto()
    IMPORT_RESOURCES = auto()
    IMPORT_MODELS = auto()
    IMPORT_INSTANCES = auto()
    RESOLVE = auto()
    VALIDATE = auto()
    REPAIR = auto()
    REVALIDATE = auto()
    FINALIZE = auto()
    DONE = auto()
    FAILED = auto()


class LevelSaver(Protocol):
    def __call__(self, level: Level) -> None: ...


def finalize(level: Level) -> Tuple[List[int], List[int]]:
    """Rebuild derived id lists; safe to call repeatedly."""
    level.rebuild_index_lists()
    return list(level.model_ids), list(level.instance_ids)


def _missing(what: str, ctx: Dict[str, object]) -> SkippableError:
    return SkippableError(E_MISSING_SOURCE, f"{what} not found in donor", ctx)


class MergeSession:
    """One merge of ``donor`` into ``target``.

    The session mutates ``target`` in place and only reads ``donor``.
    ``saver`` is called with the target after a clean finalize.
    """

    def __init__(
        self,
        donor: Level,
        target: Level,
        options: Optional[MergeOptions] = None,
        saver: Optional[LevelSaver] = None,
        namespaces: Mapping[str, NamespaceConfig] = DEFAULT_NAMESPACES,
        signature_fn: SignatureFn = texture_signature,
    ) -> None:
        self.donor = donor
        self.target = target
        self.options = options or MergeOptions()
        self.saver = saver
        self.namespaces = namespaces
        self.signature_fn = signature_fn
        self.state = MergeState.INIT
        self.report = MergeReport()
        self._allocator: Optional[IdAllocator] = None
        self._resource_map: Dict[int, Resource] = {}
        self._spline_map: Dict[int, Spline] = {}

    # -- state plumbing -------------------------------------------------
    def _enter(self, state: MergeState) -> None:
        self.state = state
        self.report.state = state.name
        log.debug("state -> %s", state.name)

    def _selected_instances(self) -> List[Instance]:
        return [
            i
            for i in self.donor.instances or ()
            if self.options.selects(i.model_id)
        ]

    def _selected_models(self) -> List[Model]:
        if not self.options.import_models or self.donor.models is None:
            return []
        return [m for m in self.donor.models if self.options.selects(m.id)]

    # -- INIT -----------------------------------------------------------
    def _check_inputs(self) -> None:
        opts = self.options
        if self.donor is None or self.target is None:
            raise fatal_error("donor and target levels are required")
        required = {
            "target.models": self.target.models,
            "target.instances": self.target.instances,
            "target.resources": self.target.resources,
            "target.splines": self.target.splines,
            "target.params": self.target.params,
            "donor.instances": self.donor.instances,
        }
        if opts.import_models:
            required["donor.models"] = self.donor.models
        if opts.map_resources:
            required["donor.resources"] = self.donor.resources
        absent = [name for name, coll in required.items() if coll is None]
        if absent:
            raise fatal_error(
                "required collections are absent", {"collections": absent}
            )
        if not self._selected_instances() and not self._selected_models():
            raise fatal_error(
                "donor level has no entities to merge",
                {"model_ids": opts.model_ids},
            )

    # -- IMPORT_RESOURCES -----------------------------------------------
    def _referenced_resources(self) -> List[int]:
        ids: List[int] = []
        seen = set()
        refs: List[Ref] = []
        for model in self._selected_models():
            refs.extend(tc.texture for tc in model.textures)
        for inst in self._selected_instances():
            refs.extend(inst.resources)
        for ref in refs:
            if not ref.is_null and ref.id not in seen:
                seen.add(ref.id)
                ids.append(ref.id)
        return ids

    def _import_resources(self) -> None:
        ids = self._referenced_resources()
        dedup = ResourceDeduplicator(
            self.target, self._allocator, self.options, self.signature_fn
        )
        rep = get_reporter()
        skipped = 0
        with task("import.resources", "Import resources", total=len(ids)) as final:
            for rid in ids:
                try:
                    res = self.donor.find(NS_RESOURCE, rid)
                    if res is None:
                        raise _missing(f"resource {rid}", {"resource": rid})
                    self._resource_map[rid] = dedup.import_entity(res)
                except SkippableError as e:
                    skipped += 1
                    self.report.skip(e)
                    rep.warning(f"Skipping resource {rid}: {e.message}")
                rep.advance("import.resources", current_item=f"resource {rid}")
            final.update(
                copied=dedup.imported, reused=dedup.reused, skipped=skipped
            )
        self.report.resources_imported = dedup.imported
        self.report.resources_reused = dedup.reused
        self._record_resource_map()
        rep.summary(
            "import",
            resources=len(ids),
            imported=dedup.imported,
            reused=dedup.reused,
            skipped=skipped,
        )

    def _record_resource_map(self) -> None:
        # Ids can move during resolve; report where each donor resource ended up.
        self.report.resource_map = {
            old: res.id for old, res in self._resource_map.items()
        }

    def _remap_resource(self, ref: Ref, owner: str) -> None:
        if ref.is_null or not self.options.map_resources:
            return
        entity = self._resource_map.get(ref.id)
        if entity is None:
            self.report.note(f"{owner}: cleared unmapped resource {ref.id}")
            ref.clear()
            return
        ref.bind(entity)

    # -- IMPORT_MODELS --------------------------------------------------
    def _import_models(self) -> None:
        models = self._selected_models()
        rep = get_reporter()
        with task("import.models", "Import models", total=len(models)) as final:
            for model in models:
                if self.target.find(NS_MODEL, model.id) is not None:
                    log.debug("model %d already present", model.id)
                else:
                    copy = model.clone()
                    for tc in copy.textures:
                        self._remap_resource(tc.texture, f"model {copy.id}")
                    self.target.models.append(copy)
                    self._allocator.reserve(NS_MODEL, copy.id)
                    self.report.models_imported += 1
                rep.advance("import.models", current_item=f"model {model.id}")
            final.update(copied=self.report.models_imported)

    # -- IMPORT_INSTANCES -----------------------------------------------
    def _import_spline(self, ref: Ref, owner: str) -> None:
        if ref.is_null:
            return
        spline = self._spline_map.get(ref.id)
        if spline is None:
            source = self.donor.find(NS_SPLINE, ref.id)
            if source is None:
                self.report.note(f"{owner}: cleared missing spline {ref.id}")
                ref.clear()
                return
            spline = source.clone()
            spline.id = self._allocator.allocate(NS_SPLINE)
            self.target.splines.append(spline)
            self._spline_map[ref.id] = spline
        ref.bind(spline)

    def _import_params(self, ref: Ref, owner: str) -> None:
        if ref.is_null:
            return
        block = self.donor.params.get(ref.id) if self.donor.params else None
        if block is None:
            self.report.note(f"{owner}: cleared missing param block {ref.id}")
            ref.clear()
            return
        index = self.target.params.add(block)
        self._allocator.reserve(NS_PARAM, index)
        ref.point_at(index)

    def _copy_instance(self, inst: Instance) -> Instance:
        model = self.target.find(NS_MODEL, inst.model_id)
        if model is None:
            raise ModelNotFoundError(
                E_MODEL_MISSING,
                f"model {inst.model_id} for instance {inst.id} is not in target",
                {"instance": inst.id, "model": inst.model_id},
            )
        copy = inst.clone()
        owner = f"instance {inst.id}"
        if self.target.models.find(model.id) is model:
            copy.model.bind(model)
        for ref in copy.resources:
            self._remap_resource(ref, owner)
        self._import_spline(copy.spline, owner)
        self._import_params(copy.params, owner)
        return copy

    def _import_instances(self) -> None:
        opts = self.options
        donor_groups: Dict[Optional[int], List[Instance]] = {}
        for inst in self._selected_instances():
            donor_groups.setdefault(inst.model_id, []).append(inst)
        target_groups: Dict[Optional[int], List[Instance]] = {}
        for inst in self.target.instances:
            target_groups.setdefault(inst.model_id, []).append(inst)

        rep = get_reporter()
        total = sum(len(g) for g in donor_groups.values())
        skipped = 0
        with task("import.instances", "Import instances", total=total) as final:
            for model_id, group in donor_groups.items():
                existing = target_groups.get(model_id, [])
                for pos, inst in enumerate(group):
                    if pos < len(existing):
                        if opts.reposition_existing:
                            existing[pos].copy_transform_from(inst)
                            self.report.repositioned += 1
                    elif opts.copy_missing:
                        try:
                            copy = self._copy_instance(inst)
                        except SkippableError as e:
                            skipped += 1
                            self.report.skip(e)
                            rep.warning(f"Skipping instance {inst.id}: {e.message}")
                        else:
                            self.target.instances.append(copy)
                            self._allocator.reserve(NS_INSTANCE, copy.id)
                            self.report.copied += 1
                    rep.advance(
                        "import.instances", current_item=f"instance {inst.id}"
                    )
            final.update(copied=self.report.copied, skipped=skipped)
        rep.summary(
            "import",
            instances=total,
            copied=self.report.copied,
            repositioned=self.report.repositioned,
            skipped=skipped,
        )

    # -- RESOLVE / VALIDATE / REPAIR --------------------------------------
    def _resolve(self) -> None:
        with task("resolve", "Resolve id conflicts") as final:
            renumber = resolve(
                self.target,
                list(self.namespaces),
                self.options.space_policy,
                self.options.shared_spaces,
                self.namespaces,
                self._allocator,
            )
            final.update(renumbered=renumber.count())
        self.report.renumber_map = renumber.to_dict()
        self._record_resource_map()
        get_reporter().summary(
            "resolve", renumbered=renumber.count(), rewritten=renumber.rewritten
        )

    def _validate(self) -> List[Violation]:
        with task("validate", "Validate references"):
            violations = validate(self.target, self.namespaces)
        get_reporter().summary("validate", violations=len(violations))
        return violations

    def _repair(self, violations: List[Violation]) -> None:
        with task("repair", "Repair violations") as final:
            result = repair(
                self.target,
                violations,
                self.options.weight_increment,
                self.namespaces,
                self._allocator,
            )
            final.update(repaired=result.repaired)
        self.report.repaired = result.repaired
        self.report.messages.extend(result.messages)
        get_reporter().summary(
            "repair",
            repaired=result.repaired,
            unfixable=len(result.unfixable),
        )

    # -- FINALIZE ---------------------------------------------------------
    def _finalize(self) -> None:
        finalize(self.target)
        if self.saver is not None:
            self.saver(self.target)
            self.report.saved = True

    def run(self) -> MergeReport:
        report = self.report
        rep = get_reporter()
        try:
            self._check_inputs()
        except FatalMergeError as e:
            self._enter(MergeState.FAILED)
            report.fatal = e.to_dict()
            log.error("Merge aborted: %s", e.message)
            return report
        self._allocator = IdAllocator(self.target, self.namespaces)

        if self.options.map_resources:
            self._enter(MergeState.IMPORT_RESOURCES)
            self._import_resources()
        if self.options.import_models:
            self._enter(MergeState.IMPORT_MODELS)
            self._import_models()
        self._enter(MergeState.IMPORT_INSTANCES)
        self._import_instances()
        self._enter(MergeState.RESOLVE)
        self._resolve()

        if self.options.skip_validation:
            report.validation_skipped = True
            log.warning(
                "Validation skipped: saving without integrity checks"
            )
        else:
            self._enter(MergeState.VALIDATE)
            violations = self._validate()
            report.violations = [v.to_dict() for v in violations]
            remaining = violations
            if violations and self.options.allow_repair:
                self._enter(MergeState.REPAIR)
                self._repair(violations)
                self._enter(MergeState.REVALIDATE)
                remaining = self._validate()
            report.remaining = [v.to_dict() for v in remaining]
            if remaining:
                for v in remaining:
                    rep.warning(f"Unresolved {v.code} at {v.path}: {v.message}")
                report.success = False
                log.warning(
                    "Merge left %d violation(s); level not saved",
                    len(remaining),
                )
                self._summary()
                return report

        self._enter(MergeState.FINALIZE)
        self._finalize()
        report.success = report.applied > 0 or report.skipped == 0
        self._enter(MergeState.DONE)
        self._summary()
        return report

    def _summary(self) -> None:
        r = self.report
        get_reporter().summary(
            "merge",
            success=r.success,
            copied=r.copied,
            repositioned=r.repositioned,
            models=r.models_imported,
            skipped=r.skipped,
            repaired=r.repaired,
        )


def merge_levels(
    donor: Level,
    target: Level,
    options: Optional[MergeOptions] = None,
    saver: Optional[LevelSaver] = None,
) -> MergeReport:
    return MergeSession(donor, target, options, saver).run()
