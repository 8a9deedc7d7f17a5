"""
Job group construction.

Collectors report every observed process as its own job row. Operators think
in terms of launches: a launcher script, the framework driver it starts and
the worker processes that driver forks. This module rebuilds those launches
by walking ``ppid -> pid`` links inside each node with a union-find, then
annotates each group with the number of NPU cards its processes hold.

Everything here is pure except :func:`annotate_card_counts`, which takes the
occupancy lookup as a callable so it can be exercised without a database.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Sequence, Set, Tuple

from monitor_api.models.job import Job

DEFAULT_PAGE_SIZE = 20

# Card-count filter value that selects groups without known occupancy
UNKNOWN_CARD_COUNT = 0

# Launchers and session wrappers; a group made only of these carries no workload
LAUNCHER_PROCESS_NAMES = frozenset({
    "bash", "sh", "zsh", "fish", "csh", "tcsh", "dash",
    "sshd", "login", "su", "sudo", "screen", "tmux",
    "containerd-shim", "containerd-shim-runc-v2", "containerd",
    "dockerd", "docker", "runc",
    "systemd", "init", "supervisord",
})

PidKey = Tuple[Optional[str], int]
CardLookup = Callable[[Optional[str], List[int]], Awaitable[Dict[int, List[int]]]]


@dataclass
class JobGroup:
    """One process tree on one node."""

    main_job: Job
    child_jobs: List[Job] = field(default_factory=list)
    # None means no running occupancy is known for any member
    card_count: Optional[int] = None

    @property
    def node_id(self) -> Optional[str]:
        return self.main_job.node_id

    @property
    def members(self) -> List[Job]:
        return [self.main_job, *self.child_jobs]

    @property
    def pids(self) -> List[int]:
        seen: Set[int] = set()
        pids = []
        for job in self.members:
            if job.pid is not None and job.pid not in seen:
                seen.add(job.pid)
                pids.append(job.pid)
        return pids


class UnionFind:
    """Disjoint sets over hashable keys, with path compression."""

    def __init__(self, keys=()):
        self._parent: Dict[Hashable, Hashable] = {}
        for key in keys:
            self.add(key)

    def add(self, key: Hashable) -> None:
        self._parent.setdefault(key, key)

    def find(self, key: Hashable) -> Hashable:
        root = key
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[key] != root:
            self._parent[key], key = root, self._parent[key]
        return root

    def union(self, child: Hashable, parent: Hashable) -> None:
        """Attach the child's set under the parent's root."""
        child_root = self.find(child)
        parent_root = self.find(parent)
        if child_root != parent_root:
            self._parent[child_root] = parent_root


def _pid_key(job: Job) -> PidKey:
    return (job.node_id, job.pid)


def select_main_job(members: Sequence[Job]) -> Job:
    """
    Pick the representative of a group.

    A member is root-like when its ppid is unset or names no pid in the
    group. The earliest-starting root-like member wins (unknown start times
    sort last, then ``job_id``). If every member is someone's child, which
    only a pid cycle can cause, the first member is used.
    """
    group_pids = {job.pid for job in members if job.pid is not None}
    root_like = [job for job in members if job.ppid is None or job.ppid not in group_pids]
    if not root_like:
        return members[0]
    return min(
        root_like,
        key=lambda job: (job.start_time is None, job.start_time or 0, job.job_id),
    )


def choose_parent(jobs: Sequence[Job], candidates: Sequence[int], child_index: int) -> Optional[int]:
    """
    Pick the parent of ``jobs[child_index]`` among same-node rows carrying its ppid.

    Pids are recycled, so several rows may match. A candidate that started no
    later than the child ranks first, then one that started after it, then one
    with an unknown start time; within a rank the closest start time wins,
    then the earliest row.
    """
    child = jobs[child_index]
    best = None
    for index in candidates:
        if index == child_index:
            continue
        candidate = jobs[index]
        if child.start_time is None or candidate.start_time is None:
            rank = (2, 0, index)
        elif candidate.start_time <= child.start_time:
            rank = (0, child.start_time - candidate.start_time, index)
        else:
            rank = (1, candidate.start_time - child.start_time, index)
        if best is None or rank < best:
            best = rank
    return best[2] if best else None


def build_job_groups(jobs: Sequence[Job]) -> List[JobGroup]:
    """
    Partition jobs into process-tree groups.

    Each row is its own element, so two rows that share a recycled pid only
    meet when a ppid link joins them. Groups come out in the order their
    first member appears in ``jobs``; jobs without a pid follow as singleton
    groups, in input order. Children keep their input order.
    """
    indices_by_pid: Dict[PidKey, List[int]] = {}
    for index, job in enumerate(jobs):
        if job.pid is not None:
            indices_by_pid.setdefault(_pid_key(job), []).append(index)

    forest = UnionFind(index for index, job in enumerate(jobs) if job.pid is not None)
    for index, job in enumerate(jobs):
        if job.pid is None or job.ppid is None:
            continue
        # Keys carry the node id, so links never cross nodes
        candidates = indices_by_pid.get((job.node_id, job.ppid), [])
        parent = choose_parent(jobs, candidates, index)
        if parent is not None:
            forest.union(index, parent)

    members_by_root: Dict[Hashable, List[Job]] = {}
    for index, job in enumerate(jobs):
        if job.pid is not None:
            members_by_root.setdefault(forest.find(index), []).append(job)

    groups = []
    for members in members_by_root.values():
        main_job = select_main_job(members)
        children = [job for job in members if job is not main_job]
        groups.append(JobGroup(main_job=main_job, child_jobs=children))

    groups.extend(JobGroup(main_job=job) for job in jobs if job.pid is None)
    return groups


async def annotate_card_counts(groups: Sequence[JobGroup], lookup: CardLookup) -> None:
    """
    Set ``card_count`` on every group.

    ``lookup(node_id, pids)`` returns ``{pid: [npu_id, ...]}`` of running
    occupancy; it is called once per node with that node's deduplicated pids.
    """
    pids_by_node: Dict[Optional[str], Set[int]] = {}
    for group in groups:
        pids_by_node.setdefault(group.node_id, set()).update(group.pids)

    cards_by_node: Dict[Optional[str], Dict[int, List[int]]] = {}
    for node_id, pids in pids_by_node.items():
        cards_by_node[node_id] = await lookup(node_id, sorted(pids)) if pids else {}

    for group in groups:
        occupancy = cards_by_node.get(group.node_id, {})
        cards: Set[int] = set()
        for pid in group.pids:
            cards.update(occupancy.get(pid, ()))
        group.card_count = len(cards) or None


def drop_launcher_groups(groups: Sequence[JobGroup]) -> List[JobGroup]:
    """Remove groups whose every member is a shell, session or container launcher."""
    return [
        group for group in groups
        if any(job.process_name not in LAUNCHER_PROCESS_NAMES for job in group.members)
    ]


def filter_by_card_counts(groups: Sequence[JobGroup], targets: Sequence[int]) -> List[JobGroup]:
    """
    Keep groups whose card count is one of ``targets``.

    ``0`` in ``targets`` selects groups with unknown occupancy. An empty
    ``targets`` keeps everything.
    """
    if not targets:
        return list(groups)

    wanted = set(targets)
    include_unknown = UNKNOWN_CARD_COUNT in wanted
    return [
        group for group in groups
        if (group.card_count is None and include_unknown)
        or (group.card_count is not None and group.card_count in wanted)
    ]


def normalize_page(page: int, page_size: int) -> Tuple[int, int]:
    """Clamp paging input: ``page < 1`` becomes 1, ``page_size < 1`` the default."""
    return max(page, 1), page_size if page_size >= 1 else DEFAULT_PAGE_SIZE


def paginate(items: Sequence, page: int, page_size: int) -> Tuple[List, int]:
    """
    Slice one page out of ``items``.

    Returns:
        Tuple of (page items, total item count)
    """
    page, page_size = normalize_page(page, page_size)
    offset = (page - 1) * page_size
    return list(items[offset:offset + page_size]), len(items)


def distinct_card_counts(groups: Sequence[JobGroup]) -> List[int]:
    """Ascending unique known card counts."""
    return sorted({group.card_count for group in groups if group.card_count is not None})
