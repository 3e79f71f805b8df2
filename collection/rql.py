"""
Filter expressions for test case pages (Zebrunner RQL).
"""
from typing import List, Optional, Sequence, Union

State = Union[str, int]


def _quote(value) -> str:
    escaped = str(value).replace("'", "\\'")
    return f"'{escaped}'"


def _automation_state_clause(automation_state: Union[State, Sequence[State]]) -> Optional[str]:
    if isinstance(automation_state, (list, tuple)):
        if not automation_state:
            return None
        ids = [s for s in automation_state if isinstance(s, int)]
        names = [s for s in automation_state if not isinstance(s, int)]
        clauses = []
        if ids:
            clauses.append(f"automationState.id IN [{', '.join(str(i) for i in ids)}]")
        if names:
            clauses.append(f"automationState.name IN [{', '.join(_quote(n) for n in names)}]")
        if len(clauses) == 1:
            return clauses[0]
        return f"({' OR '.join(clauses)})"
    if isinstance(automation_state, int):
        return f"automationState.id = {automation_state}"
    return f"automationState.name = {_quote(automation_state)}"


def build_rql_filter(
    automation_state: Optional[Union[State, Sequence[State]]] = None,
    created_after: Optional[str] = None,
    created_before: Optional[str] = None,
    modified_after: Optional[str] = None,
    modified_before: Optional[str] = None,
    suite_id: Optional[int] = None,
    priority: Optional[State] = None,
    filter: Optional[str] = None
) -> str:
    """
    Build a filter expression for the test case endpoint.
    
    Args:
        automation_state: State id, name, or a list mixing both
        created_after: Lower bound on createdAt (ISO date)
        created_before: Upper bound on createdAt (ISO date)
        modified_after: Lower bound on lastModifiedAt (ISO date)
        modified_before: Upper bound on lastModifiedAt (ISO date)
        suite_id: Immediate suite id
        priority: Priority id or name
        filter: Raw expression; returned as-is when given
    
    Returns:
        Clauses joined with AND, or an empty string when nothing was requested
    """
    if filter:
        return filter

    clauses: List[str] = []
    if automation_state is not None:
        clause = _automation_state_clause(automation_state)
        if clause:
            clauses.append(clause)
    if created_after:
        clauses.append(f"createdAt >= '{created_after}'")
    if created_before:
        clauses.append(f"createdAt <= '{created_before}'")
    if modified_after:
        clauses.append(f"lastModifiedAt >= '{modified_after}'")
    if modified_before:
        clauses.append(f"lastModifiedAt <= '{modified_before}'")
    if suite_id:
        clauses.append(f"testSuite.id = {suite_id}")
    if priority is not None:
        if isinstance(priority, int):
            clauses.append(f"priority.id = {priority}")
        else:
            clauses.append(f"priority.name = {_quote(priority)}")

    return ' AND '.join(clauses)
