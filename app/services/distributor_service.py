from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set
from uuid import uuid4
import logging
import random

from app.core.config import settings
from app.core.errors import DistributionError, NotFoundError, ValidationError
from app.database.allocation_repo import AllocationRepo
from app.database.assignment_repo import AssignmentRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.context import SYSTEM_CONTEXT, UserContext, is_admin
from app.schemas.events import DeadlineEvent
from app.schemas.review import (
    AllocationRequest, AllocationResult, AllocationRound, AssignmentPair, DeliveredSubmission,
)
from app.services.assignment_service import AssignmentService

__all__ = ["DistributionError", "DistributorService", "allocate_reviews"]

logger = logging.getLogger(__name__)


def _take_from_crowded(
    orphan: str,
    pool: Sequence[str],
    assigned: Dict[str, List[str]],
    load: Dict[str, int],
    author_of: Dict[str, str],
) -> bool:
    # un reviewer cede una submission che ha gia' almeno due reviewer
    for reviewer in pool:
        if author_of[orphan] == reviewer:
            continue
        donor = next((i for i, sid in enumerate(assigned[reviewer]) if load[sid] >= 2), None)
        if donor is None:
            continue
        load[assigned[reviewer][donor]] -= 1
        assigned[reviewer][donor] = orphan
        load[orphan] = 1
        return True
    return False


def _hand_to_free_reviewer(
    orphan: str,
    pool: Sequence[str],
    assigned: Dict[str, List[str]],
    load: Dict[str, int],
    author_of: Dict[str, str],
    reviews_per_reviewer: int,
) -> bool:
    # solo i reviewer a carico minimo possono ricevere un'assegnazione in piu'
    lightest = min(len(v) for v in assigned.values())
    if lightest >= reviews_per_reviewer:
        return False
    free = [r for r in pool if len(assigned[r]) == lightest]

    for reviewer in free:
        if author_of[orphan] != reviewer:
            assigned[reviewer].append(orphan)
            load[orphan] = 1
            return True

    # il reviewer libero e' l'autore dell'orfana: scambio con chi puo' prenderla
    for reviewer in free:
        for holder in pool:
            if holder == reviewer or author_of[orphan] == holder:
                continue
            for i, sid in enumerate(assigned[holder]):
                if author_of[sid] == reviewer or sid in assigned[reviewer]:
                    continue
                assigned[holder][i] = orphan
                assigned[reviewer].append(sid)
                load[orphan] = 1
                return True
    return False


def _cover_orphans(
    subs: Sequence[DeliveredSubmission],
    pool: Sequence[str],
    assigned: Dict[str, List[str]],
    load: Dict[str, int],
    author_of: Dict[str, str],
    reviews_per_reviewer: int,
) -> None:
    """
    Ripara le submission rimaste senza reviewer dopo le passate.

    Prima si prova a prendere il posto di una submission che ne ha gia'
    almeno due (il numero di review per reviewer non cambia). Se non ce ne
    sono, per esempio con limite 1 per submission, l'orfana va a un reviewer
    con posti liberi e carico minimo; se quel reviewer ne e' l'autore,
    prende invece la submission di un altro reviewer, che a sua volta
    prende l'orfana.
    """
    for orphan in (s.submissionId for s in subs):
        if load[orphan]:
            continue
        if not _take_from_crowded(orphan, pool, assigned, load, author_of):
            _hand_to_free_reviewer(orphan, pool, assigned, load, author_of, reviews_per_reviewer)


def allocate_reviews(
    submissions: Iterable[DeliveredSubmission],
    reviewers: Iterable[str],
    seed: Optional[int] = None,
    reviews_per_reviewer: int = 2,
    max_reviewers_per_submission: int = 2,
) -> AllocationResult:
    """
    Distribuisce le submission ai reviewer. Funzione pura: nessun accesso a
    storage, stesso input + stesso seed => stessa allocazione.

    - Gli input vengono ordinati prima di mescolarli, quindi l'ordine in cui
      arrivano non conta; reviewer e submission sono mescolati separatamente.
    - Round-robin a passate: ad ogni passata ogni reviewer riceve al piu' una
      submission, presa da un cursore che ruota sulla lista delle submission,
      saltando la propria, quelle gia' al limite di reviewer e quelle che ha
      gia' ricevuto.
    - Ci si ferma dopo la passata in cui almeno un reviewer resta senza
      submission: cosi' il carico fra due reviewer differisce al massimo di 1.
    - Infine le submission rimaste senza reviewer vengono riparate
      (vedi `_cover_orphans`).

    Non solleva mai per pool troppo piccoli: shortfall conta le submission
    rimaste senza reviewer, reviewerShortfall le assegnazioni mancanti
    rispetto a `reviews_per_reviewer`.
    """
    if reviews_per_reviewer < 1 or max_reviewers_per_submission < 1:
        raise ValidationError("reviews_per_reviewer e max_reviewers_per_submission devono essere >= 1")
    if seed is None:
        seed = random.SystemRandom().randrange(2 ** 32)
    rng = random.Random(seed)

    by_id = {s.submissionId: s for s in submissions}
    subs = [by_id[k] for k in sorted(by_id)]
    pool = sorted(set(reviewers))
    rng.shuffle(pool)
    rng.shuffle(subs)

    author_of = {s.submissionId: s.authorId for s in subs}
    load: Dict[str, int] = {s.submissionId: 0 for s in subs}
    assigned: Dict[str, List[str]] = {r: [] for r in pool}
    n = len(subs)
    cursor = 0

    if n and pool:
        for _ in range(reviews_per_reviewer):
            everyone_served = True
            for reviewer in pool:
                picked = None
                for step in range(n):
                    idx = (cursor + step) % n
                    sid = subs[idx].submissionId
                    if author_of[sid] == reviewer:
                        continue
                    if load[sid] >= max_reviewers_per_submission or sid in assigned[reviewer]:
                        continue
                    picked = idx
                    break
                if picked is None:
                    everyone_served = False
                    continue
                sid = subs[picked].submissionId
                assigned[reviewer].append(sid)
                load[sid] += 1
                cursor = (picked + 1) % n
            if not everyone_served:
                break
        _cover_orphans(subs, pool, assigned, load, author_of, reviews_per_reviewer)

    pairs = [AssignmentPair(reviewer=r, submissionId=s) for r in pool for s in assigned[r]]
    return AllocationResult(
        assignments=assigned,
        pairs=pairs,
        shortfall=sum(1 for c in load.values() if c == 0),
        reviewerShortfall=sum(reviews_per_reviewer - len(v) for v in assigned.values()) if n else 0,
        seed=seed,
    )


class DistributorService:
    """
    Produce e persiste i round di allocazione (reviewer -> submission):
    - automatic_mode=True: allocazione tramite allocate_reviews.
    - automatic_mode=False: valida lista_assegnazioni contro le submission consegnate.
    """

    @staticmethod
    async def start_round(
        assignment_id: str,
        payload: AllocationRequest,
        user: UserContext,
        submission_repo: SubmissionRepo,
        allocation_repo: AllocationRepo,
        assignment_repo: AssignmentRepo,
    ) -> AllocationRound:
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori possono avviare la distribuzione delle review")
        await AssignmentService.get_assignment(assignment_id, assignment_repo)

        submissions = await submission_repo.list_delivered_by_assignment(assignment_id)

        if payload.automatic_mode:
            # peer review: di default il pool sono gli autori che hanno consegnato
            pool = payload.reviewerPool if payload.reviewerPool is not None else [s.authorId for s in submissions]
            result = allocate_reviews(
                submissions,
                pool,
                seed=payload.seed,
                reviews_per_reviewer=settings.reviews_per_reviewer,
                max_reviewers_per_submission=settings.max_reviewers_per_submission,
            )
            pairs, seed = result.pairs, result.seed
            shortfall, reviewer_shortfall = result.shortfall, result.reviewerShortfall
        else:
            if not payload.lista_assegnazioni:
                raise DistributionError("Modalita' manuale: 'lista_assegnazioni' e' obbligatoria.")
            pairs = DistributorService._validate_manual(payload.lista_assegnazioni, submissions)
            covered = {p.submissionId for p in pairs}
            seed, reviewer_shortfall = None, 0
            shortfall = sum(1 for s in submissions if s.submissionId not in covered)

        previous = await allocation_repo.current(assignment_id)
        round_doc = AllocationRound(
            roundId=str(uuid4()),
            assignmentId=assignment_id,
            roundNumber=(previous["roundNumber"] + 1) if previous else 1,
            mode="automatic" if payload.automatic_mode else "manual",
            seed=seed,
            pairs=pairs,
            shortfall=shortfall,
            reviewerShortfall=reviewer_shortfall,
            createdBy=user.user_id,
            createdAt=datetime.now(timezone.utc),
        )
        # il round diventa valido per le review solo dopo questa scrittura
        saved = AllocationRound(**await allocation_repo.insert_round(round_doc.model_dump()))
        logger.info(
            "Round %s per assignment %s: %s coppie, shortfall=%s, seed=%s",
            saved.roundNumber, assignment_id, len(saved.pairs), saved.shortfall, saved.seed,
        )
        if saved.shortfall:
            logger.warning("Assignment %s: %s submission senza reviewer", assignment_id, saved.shortfall)
        return saved

    @staticmethod
    def deadline_handler(
        submission_repo: SubmissionRepo,
        allocation_repo: AllocationRepo,
        assignment_repo: AssignmentRepo,
    ) -> Callable[[DeadlineEvent], Awaitable[AllocationRound]]:
        """Handler per il consumer delle scadenze: avvia il round come utente di sistema."""
        async def handle(event: DeadlineEvent) -> AllocationRound:
            request = AllocationRequest(automatic_mode=True, reviewerPool=event.reviewerPool, seed=event.seed)
            return await DistributorService.start_round(
                event.assignmentId, request, SYSTEM_CONTEXT,
                submission_repo, allocation_repo, assignment_repo,
            )
        return handle

    @staticmethod
    async def current_round(assignment_id: str, allocation_repo: AllocationRepo) -> AllocationRound | None:
        d = await allocation_repo.current(assignment_id)
        return AllocationRound(**d) if d else None

    @staticmethod
    async def revoke(
        assignment_id: str, pair: AssignmentPair, user: UserContext, allocation_repo: AllocationRepo,
    ) -> AllocationRound:
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori possono revocare un'assegnazione")
        current = await DistributorService.current_round(assignment_id, allocation_repo)
        if current is None or pair not in current.pairs:
            raise NotFoundError(f"Assegnazione {pair.reviewer} -> {pair.submissionId} non presente nel round corrente")
        await allocation_repo.revoke(current.roundId, pair.model_dump())
        logger.info("Revocata assegnazione %s -> %s (round %s)", pair.reviewer, pair.submissionId, current.roundNumber)
        return AllocationRound(**await allocation_repo.current(assignment_id))

    # ----- helpers -----

    @staticmethod
    def _validate_manual(
        manual_list: Sequence[AssignmentPair],
        submissions: Sequence[DeliveredSubmission],
    ) -> List[AssignmentPair]:
        author_of = {s.submissionId: s.authorId for s in submissions}
        errors = []
        seen: Set[tuple] = set()
        for a in manual_list:
            # La submission assegnata deve esistere tra quelle consegnate
            if a.submissionId not in author_of:
                errors.append(f"Submission {a.submissionId} non trovata tra le consegne")
            # Nessuno puo' recensire la propria submission
            elif author_of[a.submissionId] == a.reviewer:
                errors.append(f"{a.reviewer} e' assegnato alla propria submission {a.submissionId}")
            key = (a.reviewer, a.submissionId)
            if key in seen:
                errors.append(f"Coppia duplicata {a.reviewer} -> {a.submissionId}")
            seen.add(key)

        if errors:
            raise DistributionError("; ".join(errors))
        return list(manual_list)
