"""External identifier allocation for work items.

Every work item carries a human-readable identifier ``{project key}-{n}``.
Numbers are drawn from the project's ``project_sequences`` row with a single
atomic ``UPDATE ... RETURNING``: the row lock taken by the UPDATE serializes
concurrent allocations for the same project until the creating transaction
commits, so two creates can never draw the same number.
"""
import logging
import re
from typing import Optional

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from . import models
from .exceptions import DuplicateIdentifierError, ValidationError

logger = logging.getLogger("trackwise-core.id_allocation")

MAX_EXTERNAL_ID_LENGTH = 20


def format_external_id(project_key: str, number: int) -> str:
    """Build an external identifier, e.g. ``format_external_id("PROJ", 7) -> "PROJ-7"``."""
    return f"{project_key}-{number}"


def parse_sequence_number(project_key: str, external_id: str) -> Optional[int]:
    """
    Extract the sequence number from an identifier in the project's namespace.

    Zero-padded identifiers (``PROJ-007``) are accepted.

    Returns:
        The number, or None if the identifier is not of the form ``{key}-{digits}``
    """
    match = re.fullmatch(rf"{re.escape(project_key)}-(\d+)", external_id.strip(), flags=re.IGNORECASE)
    if not match:
        return None
    return int(match.group(1))


def external_id_exists(db: Session, external_id: str) -> bool:
    """Check (case-insensitively) whether an external identifier is already in use."""
    return db.query(models.WorkItem.id).filter(
        func.lower(models.WorkItem.external_id) == external_id.strip().lower()
    ).first() is not None


def ensure_sequence(db: Session, project: models.Project) -> models.ProjectSequence:
    """
    Return the project's sequence row, creating it if it is missing.

    A missing row is seeded from the highest number already allocated under
    the project key so allocation continues after existing items.
    """
    sequence = db.get(models.ProjectSequence, project.id)
    if sequence is not None:
        return sequence

    existing_ids = db.query(models.WorkItem.external_id).filter(
        models.WorkItem.project_id == project.id
    ).all()
    numbers = [parse_sequence_number(project.key, row[0]) for row in existing_ids]
    max_number = max((n for n in numbers if n is not None), default=0)

    sequence = models.ProjectSequence(project_id=project.id, next_number=max_number + 1)
    db.add(sequence)
    db.flush()
    logger.info(f"Created id sequence for project {project.key} starting at {max_number + 1}")
    return sequence


def _draw_next_number(db: Session, project_id: int) -> Optional[int]:
    """Atomically take the current next_number and advance the counter."""
    stmt = (
        update(models.ProjectSequence)
        .where(models.ProjectSequence.project_id == project_id)
        .values(next_number=models.ProjectSequence.next_number + 1)
        .returning(models.ProjectSequence.next_number)
        .execution_options(synchronize_session=False)
    )
    advanced = db.execute(stmt).scalar_one_or_none()
    if advanced is None:
        return None
    return advanced - 1


def allocate_external_id(db: Session, project: models.Project) -> str:
    """
    Allocate the next external identifier for a project.

    Numbers already taken by an explicitly supplied identifier are skipped.
    The counter stays locked until the caller's transaction ends.

    Args:
        db: Database session (the caller commits)
        project: Owning project

    Returns:
        A fresh identifier such as ``PROJ-4``
    """
    while True:
        number = _draw_next_number(db, project.id)
        if number is None:
            ensure_sequence(db, project)
            continue

        candidate = format_external_id(project.key, number)
        if len(candidate) > MAX_EXTERNAL_ID_LENGTH:
            logger.error(f"Id space exhausted for project {project.key} at {candidate}")
            raise ValidationError(
                f"Project {project.key} has no external ids left within {MAX_EXTERNAL_ID_LENGTH} characters"
            )
        if not external_id_exists(db, candidate):
            logger.debug(f"Allocated external id {candidate}")
            return candidate

        logger.info(f"Skipping external id {candidate}: already in use")


def reserve_external_id(db: Session, project: models.Project, external_id: str) -> str:
    """
    Accept a caller-supplied external identifier after checking it is unused.

    An identifier in the project's own namespace (``{key}-{n}``) advances the
    counter past ``n`` so later allocations cannot collide with it.

    Args:
        db: Database session (the caller commits)
        project: Owning project
        external_id: Identifier supplied by the caller

    Returns:
        The identifier, stripped of surrounding whitespace

    Raises:
        ValidationError: If the identifier is blank, too long or contains whitespace,
            or if it would push the project counter past the longest allocatable id
        DuplicateIdentifierError: If another work item already uses it
    """
    external_id = external_id.strip()
    if not external_id or len(external_id) > MAX_EXTERNAL_ID_LENGTH or re.search(r"\s", external_id):
        raise ValidationError(
            f"external_id must be 1-{MAX_EXTERNAL_ID_LENGTH} characters without whitespace"
        )

    if external_id_exists(db, external_id):
        logger.warning(f"Rejected duplicate external id {external_id}")
        raise DuplicateIdentifierError(f"External id '{external_id}' is already in use")

    number = parse_sequence_number(project.key, external_id)
    if number is not None and len(format_external_id(project.key, number + 1)) > MAX_EXTERNAL_ID_LENGTH:
        raise ValidationError(
            f"external_id {external_id} leaves no room for later ids in project {project.key}"
        )
    if number is not None:
        ensure_sequence(db, project)
        db.execute(
            update(models.ProjectSequence)
            .where(models.ProjectSequence.project_id == project.id)
            .values(
                next_number=case(
                    (models.ProjectSequence.next_number <= number, number + 1),
                    else_=models.ProjectSequence.next_number,
                )
            )
            .execution_options(synchronize_session=False)
        )

    return external_id
