"""
Session Data Models
===================

Persisted orchestration state: sessions, worker instances and the
instance-group tree used for ordering and display.

Key Features:
- Session / Instance / InstanceGroup dataclasses with to_dict/from_dict
  matching the session.json layout
- Recursive group lookups (get_group, get_group_for_instance)
- prune_groups(): pure tree transform dropping dangling instance references
  and groups left empty, returning freshly built nodes
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from coordinator.planning.models import UltraPlanSession
from coordinator.timestamps import format_time, parse_time, utc_now


class InstanceStatus(Enum):
    PENDING = "pending"
    WORKING = "working"
    WAITING_INPUT = "waiting_input"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    CREATING_PR = "creating_pr"
    STUCK = "stuck"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"


# Statuses that mean a backing process was doing work when we last looked
ACTIVE_STATUSES = {
    InstanceStatus.WORKING,
    InstanceStatus.WAITING_INPUT,
    InstanceStatus.CREATING_PR,
}


class GroupPhase(Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Instance:
    """
    One worker process bound to a git worktree.

    Attributes:
        id: Instance identifier
        worktree_path: Path of the instance's worktree
        branch: Branch checked out in the worktree
        task: Prompt/task text the instance works on
        status: Last known status
        pid: PID of the backing process, 0 when unknown
        files_modified: Files the instance changed
        created: Creation time
        tmux_session: Name of the backing tmux session
        depends_on: Instance IDs this one waits for
        dependents: Instance IDs waiting on this one
        auto_start: Start automatically once dependencies complete
        display_name: Optional short name for the UI
        claude_session_id: Agent conversation ID used to resume work
        last_active_at: Last observed activity
        interrupted_at: When the instance was found interrupted
    """
    id: str
    worktree_path: str = ""
    branch: str = ""
    task: str = ""
    status: InstanceStatus = InstanceStatus.PENDING
    pid: int = 0
    files_modified: List[str] = field(default_factory=list)
    created: datetime = field(default_factory=utc_now)
    tmux_session: str = ""
    depends_on: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)
    auto_start: bool = False
    display_name: str = ""
    claude_session_id: str = ""
    last_active_at: Optional[datetime] = None
    interrupted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "worktree_path": self.worktree_path,
            "branch": self.branch,
            "task": self.task,
            "status": self.status.value,
            "pid": self.pid,
            "files_modified": list(self.files_modified),
            "created": format_time(self.created),
            "tmux_session": self.tmux_session,
            "depends_on": list(self.depends_on),
            "dependents": list(self.dependents),
            "auto_start": self.auto_start,
            "display_name": self.display_name,
            "claude_session_id": self.claude_session_id,
            "last_active_at": format_time(self.last_active_at),
            "interrupted_at": format_time(self.interrupted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Instance":
        return cls(
            id=data["id"],
            worktree_path=data.get("worktree_path") or "",
            branch=data.get("branch") or "",
            task=data.get("task") or "",
            status=InstanceStatus(data.get("status") or InstanceStatus.PENDING.value),
            pid=int(data.get("pid") or 0),
            files_modified=list(data.get("files_modified") or []),
            created=parse_time(data.get("created")) or utc_now(),
            tmux_session=data.get("tmux_session") or "",
            depends_on=list(data.get("depends_on") or []),
            dependents=list(data.get("dependents") or []),
            auto_start=bool(data.get("auto_start", False)),
            display_name=data.get("display_name") or "",
            claude_session_id=data.get("claude_session_id") or "",
            last_active_at=parse_time(data.get("last_active_at")),
            interrupted_at=parse_time(data.get("interrupted_at")),
        )


@dataclass
class InstanceGroup:
    """
    Node in the instance-group tree. A group exclusively owns its sub-groups.

    Attributes:
        id: Group identifier
        name: Display name
        phase: Execution phase of the group
        instances: Instance IDs directly in this group
        sub_groups: Child groups
        parent_id: ID of the parent group, None at the root
        execution_order: Position among sibling groups
        depends_on: Group IDs that must complete first
        created: Creation time
        session_type: Kind of work that created the group (plan, tripleshot, ...)
        objective: Objective the group works toward
    """
    id: str
    name: str = ""
    phase: GroupPhase = GroupPhase.PENDING
    instances: List[str] = field(default_factory=list)
    sub_groups: List["InstanceGroup"] = field(default_factory=list)
    parent_id: Optional[str] = None
    execution_order: int = 0
    depends_on: List[str] = field(default_factory=list)
    created: datetime = field(default_factory=utc_now)
    session_type: str = ""
    objective: str = ""

    def all_instance_ids(self) -> List[str]:
        """Instance IDs in this group and all descendants, depth-first."""
        ids = list(self.instances)
        for sub in self.sub_groups:
            ids.extend(sub.all_instance_ids())
        return ids

    def instance_count(self) -> int:
        return len(self.all_instance_ids())

    def is_empty(self) -> bool:
        return self.instance_count() == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phase": self.phase.value,
            "instances": list(self.instances),
            "sub_groups": [g.to_dict() for g in self.sub_groups],
            "parent_id": self.parent_id,
            "execution_order": self.execution_order,
            "depends_on": list(self.depends_on),
            "created": format_time(self.created),
            "session_type": self.session_type,
            "objective": self.objective,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstanceGroup":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            phase=GroupPhase(data.get("phase") or GroupPhase.PENDING.value),
            instances=list(data.get("instances") or []),
            sub_groups=[cls.from_dict(g) for g in data.get("sub_groups") or []],
            parent_id=data.get("parent_id") or None,
            execution_order=int(data.get("execution_order") or 0),
            depends_on=list(data.get("depends_on") or []),
            created=parse_time(data.get("created")) or utc_now(),
            session_type=data.get("session_type") or "",
            objective=data.get("objective") or "",
        )


def find_group(groups: Iterable[InstanceGroup], group_id: str) -> Optional[InstanceGroup]:
    for group in groups:
        if group.id == group_id:
            return group
        found = find_group(group.sub_groups, group_id)
        if found is not None:
            return found
    return None


def find_group_for_instance(groups: Iterable[InstanceGroup], instance_id: str) -> Optional[InstanceGroup]:
    """Return the innermost group directly listing instance_id."""
    for group in groups:
        found = find_group_for_instance(group.sub_groups, instance_id)
        if found is not None:
            return found
        if instance_id in group.instances:
            return group
    return None


def prune_groups(groups: Iterable[InstanceGroup], valid_ids: Set[str]) -> List[InstanceGroup]:
    """
    Drop dangling instance references and groups left without instances.

    Returns new InstanceGroup nodes; the input tree is never mutated, so the
    pre- and post-prune trees share no nodes or lists.

    Args:
        groups: Groups to prune
        valid_ids: Instance IDs that still exist

    Returns:
        Pruned copy of the group list, order preserved
    """
    pruned = []
    for group in groups:
        sub_groups = prune_groups(group.sub_groups, valid_ids)
        instances = [i for i in group.instances if i in valid_ids]
        if not instances and not sub_groups:
            continue
        pruned.append(InstanceGroup(
            id=group.id,
            name=group.name,
            phase=group.phase,
            instances=instances,
            sub_groups=sub_groups,
            parent_id=group.parent_id,
            execution_order=group.execution_order,
            depends_on=list(group.depends_on),
            created=group.created,
            session_type=group.session_type,
            objective=group.objective,
        ))
    return pruned


@dataclass
class Session:
    """
    Persisted unit of orchestration state for one body of work.

    Attributes:
        id: Session identifier (also its directory name)
        name: Display name
        base_repo: Repository the worktrees branch from
        created: Creation time
        instances: Worker instances
        groups: Instance-group trees
        ultra_plan: Ultra-plan state when the session runs one
        recovery_state: Empty, "interrupted" or "recovered"
        last_active_at: Last time an owning process saved the session
        clean_shutdown: True when the last owner exited normally
        interrupted_at: When an unclean shutdown was detected
        recovered_at: When the session was last recovered
        recovery_attempt: Number of recoveries performed
    """
    id: str
    name: str = ""
    base_repo: str = ""
    created: datetime = field(default_factory=utc_now)
    instances: List[Instance] = field(default_factory=list)
    groups: List[InstanceGroup] = field(default_factory=list)
    ultra_plan: Optional[UltraPlanSession] = None
    recovery_state: str = ""
    last_active_at: Optional[datetime] = None
    clean_shutdown: bool = False
    interrupted_at: Optional[datetime] = None
    recovered_at: Optional[datetime] = None
    recovery_attempt: int = 0

    def get_instance(self, instance_id: str) -> Optional[Instance]:
        for inst in self.instances:
            if inst.id == instance_id:
                return inst
        return None

    def get_group(self, group_id: str) -> Optional[InstanceGroup]:
        return find_group(self.groups, group_id)

    def get_group_for_instance(self, instance_id: str) -> Optional[InstanceGroup]:
        return find_group_for_instance(self.groups, instance_id)

    def remove_instance_from_groups(self, instance_id: str) -> None:
        self.groups = prune_groups(
            self.groups,
            {i.id for i in self.instances if i.id != instance_id},
        )

    def cleanup_empty_groups(self) -> None:
        self.groups = prune_groups(self.groups, {i.id for i in self.instances})

    def mark_interrupted(self, now: Optional[datetime] = None) -> List[str]:
        """
        Flag instances that were mid-work as interrupted.

        Returns:
            IDs of the instances that changed status
        """
        now = now or utc_now()
        changed = []
        for inst in self.instances:
            if inst.status in ACTIVE_STATUSES:
                inst.status = InstanceStatus.INTERRUPTED
                inst.interrupted_at = now
                changed.append(inst.id)
        if changed:
            self.recovery_state = "interrupted"
            self.interrupted_at = now
        return changed

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "base_repo": self.base_repo,
            "created": format_time(self.created),
            "instances": [i.to_dict() for i in self.instances],
        }
        if self.groups:
            data["groups"] = [g.to_dict() for g in self.groups]
        if self.ultra_plan is not None:
            data["ultra_plan"] = self.ultra_plan.to_dict()
        if self.recovery_state:
            data["recovery_state"] = self.recovery_state
        data["last_active_at"] = format_time(self.last_active_at)
        data["clean_shutdown"] = self.clean_shutdown
        data["interrupted_at"] = format_time(self.interrupted_at)
        data["recovered_at"] = format_time(self.recovered_at)
        data["recovery_attempt"] = self.recovery_attempt
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            base_repo=data.get("base_repo") or "",
            created=parse_time(data.get("created")) or utc_now(),
            instances=[Instance.from_dict(i) for i in data.get("instances") or []],
            groups=[InstanceGroup.from_dict(g) for g in data.get("groups") or []],
            ultra_plan=(
                UltraPlanSession.from_dict(data["ultra_plan"])
                if data.get("ultra_plan") else None
            ),
            recovery_state=data.get("recovery_state") or "",
            last_active_at=parse_time(data.get("last_active_at")),
            clean_shutdown=bool(data.get("clean_shutdown", False)),
            interrupted_at=parse_time(data.get("interrupted_at")),
            recovered_at=parse_time(data.get("recovered_at")),
            recovery_attempt=int(data.get("recovery_attempt") or 0),
        )
