import pytest
from datetime import datetime, timedelta, timezone

from app.schemas.assignment import AssignmentCreate
from app.schemas.context import UserContext
from app.schemas.review import AllocationRequest, AssignmentPair
from app.schemas.submission import SubmitRequest
from app.services.assignment_service import AssignmentService
from app.services.distributor_service import DistributorService
from app.services.submission_service import SubmissionService

from fakes import Repos


@pytest.fixture
def repos():
    return Repos()

@pytest.fixture
def admin():
    return UserContext(user_id="admin-1", role="admin")

@pytest.fixture
def other_admin():
    return UserContext(user_id="admin-2", role="admin")

@pytest.fixture
def student1():
    return UserContext(user_id="s-1", role="member")

@pytest.fixture
def student2():
    return UserContext(user_id="s-2", role="member")

@pytest.fixture
def student3():
    return UserContext(user_id="s-3", role="member")


@pytest.fixture
def make_assignment(repos, admin):
    async def _make(**overrides):
        base = dict(
            title="Saggio sul club",
            description="Scrivere un saggio di due pagine",
            dueAt=datetime.now(timezone.utc) + timedelta(days=7),
            maxPoints=100,
        )
        base.update(overrides)
        return await AssignmentService.create_assignment("club-1", AssignmentCreate(**base), admin, repos.assignments)
    return _make


@pytest.fixture
def submit(repos):
    async def _submit(assignment_id: str, author_id: str, content: str = "il mio lavoro"):
        user = UserContext(user_id=author_id, role="member")
        return await SubmissionService.submit_assignment(
            assignment_id, SubmitRequest(content=content), user, repos.submissions, repos.assignments,
        )
    return _submit


@pytest.fixture
def manual_round(repos, admin):
    async def _round(assignment_id: str, pairs):
        payload = AllocationRequest(
            automatic_mode=False,
            lista_assegnazioni=[AssignmentPair(reviewer=r, submissionId=s) for r, s in pairs],
        )
        return await DistributorService.start_round(
            assignment_id, payload, admin, repos.submissions, repos.allocations, repos.assignments,
        )
    return _round
