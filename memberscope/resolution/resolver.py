"""
Group Membership Resolver
=========================

Expands a directory group through nested groups into a flat, deduplicated
list of every reachable principal.

How it works:
- The root group is looked up first; a missing root fails before traversal
- Each group id enters the visited set before its members are fetched, so
  cycles (A -> B -> A) and diamond nesting are expanded only once
- With a depth limit, a group first expanded on a deep path is expanded again
  when reached on a shallower one, if the limit cut its first expansion short
- A nested group's record is emitted before any of its members
- Devices are annotated with the UPNs of their User-kind registered owners
- The root group itself is never emitted, even when nesting cycles back to it
- The final list holds one record per object id (last emission wins)

Traversal is an explicit stack of member iterators rather than call-stack
recursion, so deep hierarchies do not hit the interpreter recursion limit.
The emission order is identical to a depth-first recursive walk.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from ..config import ResolverConfig
from ..directory.client import DirectoryServiceClient
from ..errors import GroupNotFoundError, ObjectNotFoundError
from ..model.membership_graph import MembershipGraph
from ..model.schemas import (
    Group, MemberRef, MemberRecord, ObjectKind,
    ResolutionResult, SkippedMember
)


@dataclass
class _RunState:
    """Mutable state owned by exactly one resolution run."""
    root: Group
    graph: MembershipGraph
    visited: set = field(default_factory=set)
    expanded_depth: dict = field(default_factory=dict)  # group id -> shallowest expansion depth
    truncated: set = field(default_factory=set)  # groups whose expansion hit max_depth
    visit_order: list = field(default_factory=list)
    emitted: list = field(default_factory=list)  # MemberRecord, before dedup
    skipped: list = field(default_factory=list)  # SkippedMember
    warnings: list = field(default_factory=list)


@dataclass
class _Frame:
    """A group whose members are being walked."""
    group_id: str
    depth: int
    members: Iterator[MemberRef]
    truncated: bool = False


class GroupMembershipResolver:
    """Cycle-safe resolver for nested group membership.

    Usage:
        resolver = GroupMembershipResolver(client)

        records = resolver.resolve("group-object-id")
        for record in records:
            print(record.name, record.kind.value, record.primary_user)

        # Full result with visited groups, skipped members and graph
        result = resolver.resolve_by_name("Tier0 Admins")
    """

    def __init__(
        self,
        client: DirectoryServiceClient,
        config: Optional[ResolverConfig] = None,
        verbose: bool = False,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the resolver.

        Args:
            client: Directory service to read from
            config: Resolver configuration (uses defaults if None)
            verbose: Whether to print progress messages
            progress_callback: Optional callback for progress updates
        """
        self.client = client
        self.config = config or ResolverConfig()
        self.verbose = verbose
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def resolve(self, root_group_id: str) -> list[MemberRecord]:
        """Resolve all transitive members of a group.

        Returns:
            One MemberRecord per distinct object id, groups included

        Raises:
            GroupNotFoundError: If the root group does not exist
        """
        return self.resolve_detailed(root_group_id).records

    def resolve_detailed(self, root_group_id: str) -> ResolutionResult:
        """Resolve a group by id, returning the full ResolutionResult."""
        try:
            root = self.client.get_group(root_group_id)
        except ObjectNotFoundError as e:
            raise GroupNotFoundError(root_group_id) from e
        return self._run(root)

    def resolve_by_name(self, group_name: str) -> ResolutionResult:
        """Resolve a group by display name, returning the full ResolutionResult."""
        root = self.client.get_group_by_name(group_name)
        if root is None:
            raise GroupNotFoundError(group_name)
        return self._run(root)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _run(self, root: Group) -> ResolutionResult:
        self._log(f"[*] Resolving members of {root.display_name or root.object_id}")

        state = _RunState(root=root, graph=MembershipGraph(root))

        stack: list[_Frame] = []
        # Root listing failures are always fatal
        root_frame = self._expand(state, root.object_id, depth=0, is_root=True)
        if root_frame is not None:
            stack.append(root_frame)

        while stack:
            frame = stack[-1]
            ref = next(frame.members, None)
            if ref is None:
                stack.pop()
                if frame.truncated:
                    state.truncated.add(frame.group_id)
                    if stack:
                        stack[-1].truncated = True
                continue

            depth = frame.depth + 1
            nested = self._visit_member(state, frame.group_id, ref, depth)
            if nested is None:
                continue

            if self.config.max_depth is not None and depth >= self.config.max_depth:
                if nested not in state.visited or nested in state.truncated:
                    frame.truncated = True
                    self._log(f"[*] Depth limit reached, not expanding {state.graph.get_name(nested)}")
                continue

            if not self._should_expand(state, nested, depth):
                if nested in state.truncated:
                    frame.truncated = True
                continue

            nested_frame = self._expand(state, nested, depth=depth, parent_id=frame.group_id)
            if nested_frame is not None:
                stack.append(nested_frame)

        records = self._deduplicate(state.emitted)
        result = ResolutionResult(
            root_group=root,
            records=records,
            visited_groups=list(state.visit_order),
            skipped=list(state.skipped),
            warnings=list(state.warnings),
            graph=state.graph,
            metadata={
                'source': type(self.client).__name__,
                'emitted_records': len(state.emitted),
                'groups_expanded': len(state.visit_order),
                'max_depth': state.graph.max_depth,
                'has_cycles': state.graph.has_cycles(),
            }
        )

        self._log(
            f"[+] Resolved {len(records)} members across {len(state.visit_order)} groups"
            + (f" ({len(state.skipped)} skipped)" if state.skipped else "")
        )
        return result

    def _should_expand(self, state: _RunState, group_id: str, depth: int) -> bool:
        """Whether a group reached at depth needs (another) expansion.

        Without a depth limit every group is expanded once. With one, a group
        is expanded again only when reached at a strictly smaller depth than
        before and its earlier expansion was cut short by the limit.
        """
        if group_id not in state.visited:
            return True
        if self.config.max_depth is None:
            return False
        return group_id in state.truncated and depth < state.expanded_depth[group_id]

    def _expand(
        self,
        state: _RunState,
        group_id: str,
        depth: int,
        parent_id: Optional[str] = None,
        is_root: bool = False
    ) -> Optional[_Frame]:
        """Mark a group visited and start walking its members.

        Returns None when the member listing failed under the skip policy.
        """
        if group_id in state.visited:
            self._log(f"[*] Re-expanding {state.graph.get_name(group_id)} at shallower depth {depth}")
            state.truncated.discard(group_id)
        else:
            state.visit_order.append(group_id)

        # Visited before fetching so a failing fetch cannot be re-entered
        state.visited.add(group_id)
        state.expanded_depth[group_id] = depth

        self._log(f"[*] Expanding {state.graph.get_name(group_id)} (depth {depth})")

        if is_root:
            members = self.client.get_group_members(group_id)
        else:
            members = self._guarded(
                state, MemberRef(group_id, ObjectKind.GROUP), parent_id,
                self.client.get_group_members, group_id
            )
            if members is None:
                return None

        return _Frame(group_id=group_id, depth=depth, members=iter(members))

    def _visit_member(self, state: _RunState, parent_id: str, ref: MemberRef, depth: int) -> Optional[str]:
        """Emit the record for one member.

        Returns:
            The member's id when it is a group that should be expanded next
        """
        state.graph.add_membership(parent_id, ref.object_id)

        if ref.kind == ObjectKind.USER:
            user = self._guarded(state, ref, parent_id, self.client.get_user, ref.object_id)
            if user is not None:
                state.graph.add_object(user)
                self._emit(state, MemberRecord(
                    name=user.display_name,
                    kind=ObjectKind.USER,
                    object_id=user.object_id,
                    user_principal_name=user.user_principal_name or ""
                ))

        elif ref.kind == ObjectKind.SERVICE_PRINCIPAL:
            sp = self._guarded(state, ref, parent_id, self.client.get_service_principal, ref.object_id)
            if sp is not None:
                state.graph.add_object(sp)
                self._emit(state, MemberRecord(
                    name=sp.display_name,
                    kind=ObjectKind.SERVICE_PRINCIPAL,
                    object_id=sp.object_id
                ))

        elif ref.kind == ObjectKind.DEVICE:
            self._visit_device(state, parent_id, ref)

        elif ref.kind == ObjectKind.GROUP:
            group = self._guarded(state, ref, parent_id, self.client.get_group, ref.object_id)
            if group is None:
                return None
            state.graph.add_object(group)
            if group.object_id == state.root.object_id:
                self._log(f"[*] {group.display_name} nests the root group, not emitting it")
            else:
                self._emit(state, MemberRecord(
                    name=group.display_name,
                    kind=ObjectKind.GROUP,
                    object_id=group.object_id
                ))
            return group.object_id

        else:
            self._log(f"[!] Skipping member {ref.object_id} of {parent_id}: unsupported kind")
            state.skipped.append(SkippedMember(
                object_id=ref.object_id,
                kind=ref.kind,
                parent_id=parent_id,
                reason="unsupported object kind"
            ))
            state.graph.add_placeholder(ref.object_id, ref.kind)

        return None

    def _visit_device(self, state: _RunState, parent_id: str, ref: MemberRef) -> None:
        device = self._guarded(state, ref, parent_id, self.client.get_device, ref.object_id)
        if device is None:
            return

        # The device itself resolved, so a failed owner listing is only a warning
        owners = self._guarded(
            state, ref, parent_id,
            self.client.get_device_registered_owners, device.object_id,
            as_warning=f"Registered owners of {device.display_name or device.object_id} unavailable"
        )

        upns = []
        for owner in owners or []:
            if owner.kind != ObjectKind.USER:
                continue
            user = self._guarded(state, owner, device.object_id, self.client.get_user, owner.object_id)
            if user is None:
                continue
            state.graph.add_object(user)
            state.graph.add_ownership(device.object_id, user.object_id)
            if user.user_principal_name:
                upns.append(user.user_principal_name)

        device.primary_user_principal_names = upns
        state.graph.add_object(device)
        self._emit(state, MemberRecord(
            name=device.display_name,
            kind=ObjectKind.DEVICE,
            object_id=device.object_id,
            primary_user=self.config.owner_separator.join(upns)
        ))

    def _guarded(
        self,
        state: _RunState,
        ref: MemberRef,
        parent_id: Optional[str],
        fetch: Callable,
        *args,
        as_warning: Optional[str] = None
    ):
        """Call a per-member lookup, applying the lookup-error policy.

        Only ObjectNotFoundError is subject to the policy; connection errors
        always propagate. With as_warning set, a failure is recorded as a
        warning instead of a skipped member.
        """
        try:
            return fetch(*args)
        except ObjectNotFoundError as e:
            if self.config.on_lookup_error == "abort":
                raise
            if as_warning is not None:
                message = f"{as_warning}: {e}"
                self._log(f"[!] {message}")
                state.warnings.append(message)
                return None
            self._log(f"[!] Skipping {ref.kind.value} {ref.object_id} (in {parent_id}): {e}")
            state.skipped.append(SkippedMember(
                object_id=ref.object_id,
                kind=ref.kind,
                parent_id=parent_id,
                reason=str(e)
            ))
            state.graph.add_placeholder(ref.object_id, ref.kind)
            return None

    def _emit(self, state: _RunState, record: MemberRecord) -> None:
        state.emitted.append(record)

    @staticmethod
    def _deduplicate(records: list[MemberRecord]) -> list[MemberRecord]:
        """Keep one record per object id.

        The last emitted record for an id wins; its position is that of the
        id's first emission.
        """
        by_id: dict[str, MemberRecord] = {}
        for record in records:
            by_id[record.object_id] = record
        return list(by_id.values())
