from datetime import datetime, timezone
from math import ceil

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from taskmanager.database import get_db
from taskmanager.dependencies import get_current_user, task_query, valid_task_id
from taskmanager.errors import persistence_guard
from taskmanager.models.task import PRIORITIES, Task
from taskmanager.models.user import User
from taskmanager.schemas.task import TaskCreate, TaskQuery, TaskUpdate, serialize_task
from taskmanager.utils.responses import success

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _owned(db: Session, user: User):
    # every task query starts here, so other users' rows are never reachable
    return db.query(Task).options(joinedload(Task.user)).filter(Task.user_id == user.id)


def _get_owned_or_404(db: Session, user: User, task_id: str) -> Task:
    task = _owned(db, user).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# declared before /{id} so "stats" is not taken for an id
@router.get("/stats")
def get_task_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with persistence_guard(db, "Server error while loading tasks stats"):
        rows = (
            db.query(Task.completed, Task.priority, func.count(Task.id))
            .filter(Task.user_id == current_user.id)
            .group_by(Task.completed, Task.priority)
            .all()
        )
        overdue = (
            db.query(func.count(Task.id))
            .filter(
                Task.user_id == current_user.id,
                Task.completed.is_(False),
                Task.due_date.isnot(None),
                Task.due_date < datetime.now(timezone.utc),
            )
            .scalar()
        )

    completed = incomplete = 0
    by_priority = {p: 0 for p in PRIORITIES}
    for is_done, priority, count in rows:
        if is_done:
            completed += count
        else:
            incomplete += count
        by_priority[priority] = by_priority.get(priority, 0) + count

    return success(
        {
            "totalCompletedTasks": completed,
            "totalIncompletedTasks": incomplete,
            "totalTasks": completed + incomplete,
            "byPriority": by_priority,
            "overdueTasks": overdue or 0,
        },
        "tasks stats fetched successfully",
    )


@router.get("")
def list_tasks(
    current_user: User = Depends(get_current_user),
    q: TaskQuery = Depends(task_query),
    db: Session = Depends(get_db),
):
    """Newest first; filters combine, search matches title or description."""
    with persistence_guard(db, "Server error while fetching tasks"):
        query = _owned(db, current_user)
        if q.completed is not None:
            query = query.filter(Task.completed.is_(q.completed))
        if q.priority:
            query = query.filter(Task.priority == q.priority)
        if q.search:
            pattern = f"%{_escape_like(q.search)}%"
            query = query.filter(
                or_(Task.title.ilike(pattern, escape="\\"), Task.description.ilike(pattern, escape="\\"))
            )
        total = query.count()
        tasks = (
            query.order_by(Task.created_at.desc())
            .offset((q.page - 1) * q.limit)
            .limit(q.limit)
            .all()
        )

    return success(
        {
            "tasks": [serialize_task(t) for t in tasks],
            "pagination": {
                "current": q.page,
                "pages": ceil(total / q.limit),
                "total": total,
                "limit": q.limit,
            },
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with persistence_guard(db, "Server error while creating task"):
        task = Task(
            title=payload.title,
            description=payload.description,
            priority=payload.priority or "medium",
            due_date=payload.due_date,
            user_id=current_user.id,
        )
        db.add(task)
        db.commit()
        db.refresh(task)

    return success({"task": serialize_task(task)}, "Task created successfully")


@router.get("/{id}")
def get_task(
    current_user: User = Depends(get_current_user),
    task_id: str = Depends(valid_task_id),
    db: Session = Depends(get_db),
):
    with persistence_guard(db, "Server error while fetching task"):
        task = _get_owned_or_404(db, current_user, task_id)
    return success({"task": serialize_task(task)})


@router.put("/{id}")
def update_task(
    payload: TaskUpdate,
    current_user: User = Depends(get_current_user),
    task_id: str = Depends(valid_task_id),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with persistence_guard(db, "Server error while updating task"):
        task = _get_owned_or_404(db, current_user, task_id)
        for field, value in changes.items():
            setattr(task, field, value)
        db.commit()
        db.refresh(task)

    return success({"task": serialize_task(task)}, "Task updated successfully")


@router.delete("/{id}")
def delete_task(
    current_user: User = Depends(get_current_user),
    task_id: str = Depends(valid_task_id),
    db: Session = Depends(get_db),
):
    with persistence_guard(db, "Server error while deleting task"):
        task = _get_owned_or_404(db, current_user, task_id)
        data = serialize_task(task)
        db.delete(task)
        db.commit()

    return success({"task": data}, "Task deleted successfully")


@router.patch("/{id}/toggle")
def toggle_task(
    current_user: User = Depends(get_current_user),
    task_id: str = Depends(valid_task_id),
    db: Session = Depends(get_db),
):
    with persistence_guard(db, "Server error while toggling task"):
        task = _get_owned_or_404(db, current_user, task_id)
        task.completed = not task.completed
        db.commit()
        db.refresh(task)

    state = "completed" if task.completed else "incomplete"
    return success({"task": serialize_task(task)}, f"Task marked as {state}")
