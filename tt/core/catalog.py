from tt.common.logger import log
from tt.core.errors import InvalidEntry, InvalidReference, NotFound
from tt.core.models import UNKNOWN, Project, Task


def _clean_name(name, kind):
    name = (name or "").strip()
    if not name:
        raise InvalidEntry(f"{kind.capitalize()} name must not be empty")
    return name


# Entries only point at projects/tasks by id. Deleting either never touches entries, their references resolve to UNKNOWN.
class Catalog:

    def __init__(self):
        self._projects = {}  # id -> Project, insertion ordered
        self._tasks = {}     # id -> Task
        self._next_project_id = 1
        self._next_task_id = 1

    # Replaces everything with loaded data, keeping the stored ids.
    def restore(self, projects, tasks):
        self._projects = {p.id: p for p in projects}
        self._tasks = {t.id: t for t in tasks}
        self._next_project_id = max(self._projects, default=0) + 1
        self._next_task_id = max(self._tasks, default=0) + 1
        orphans = [t.id for t in self._tasks.values() if t.project_id not in self._projects]
        if orphans:
            log.warning(f"Loaded {len(orphans)} task(s) whose project no longer exists: {orphans}")

    #region === Projects ===

    def projects(self):
        return list(self._projects.values())

    def get_project(self, project_id):
        try:
            return self._projects[project_id]
        except KeyError:
            raise NotFound("project", project_id) from None

    def create_project(self, name, description=""):
        project = Project(id=self._next_project_id, name=_clean_name(name, "project"), description=description or "")
        self._next_project_id += 1
        self._projects[project.id] = project
        log.debug(f"Created project {project.id} '{project.name}'")
        return project

    def edit_project(self, project_id, name=None, description=None):
        project = self.get_project(project_id)
        if name is not None:
            project.name = _clean_name(name, "project")
        if description is not None:
            project.description = description
        log.debug(f"Edited project {project_id}")
        return project

    # Deletes the project along with the tasks it owns. Returns the ids of the removed tasks.
    def delete_project(self, project_id):
        project = self.get_project(project_id)
        owned = [tid for tid, t in self._tasks.items() if t.project_id == project_id]
        for tid in owned:
            del self._tasks[tid]
        del self._projects[project_id]
        log.info(f"Deleted project {project_id} '{project.name}' and {len(owned)} task(s)")
        return owned

    #endregion === Projects ===

    #region === Tasks ===

    def tasks(self):
        return list(self._tasks.values())

    def tasks_for_project(self, project_id):
        return [t for t in self._tasks.values() if t.project_id == project_id]

    def get_task(self, task_id):
        try:
            return self._tasks[task_id]
        except KeyError:
            raise NotFound("task", task_id) from None

    def create_task(self, project_id, name, description=""):
        if project_id not in self._projects:
            raise InvalidReference(f"Cannot add a task to unknown project {project_id}")
        task = Task(
            id=self._next_task_id,
            project_id=project_id,
            name=_clean_name(name, "task"),
            description=description or "",
        )
        self._next_task_id += 1
        self._tasks[task.id] = task
        log.debug(f"Created task {task.id} '{task.name}' in project {project_id}")
        return task

    def edit_task(self, task_id, name=None, description=None):
        task = self.get_task(task_id)
        if name is not None:
            task.name = _clean_name(name, "task")
        if description is not None:
            task.description = description
        log.debug(f"Edited task {task_id}")
        return task

    def delete_task(self, task_id):
        task = self.get_task(task_id)
        del self._tasks[task_id]
        log.info(f"Deleted task {task_id} '{task.name}'")

    #endregion === Tasks ===

    #region === Reference handling ===

    # None stays None (no reference), a live id resolves to its object, anything else is UNKNOWN.
    def resolve_project(self, project_id):
        if project_id is None:
            return None
        return self._projects.get(project_id, UNKNOWN)

    def resolve_task(self, task_id):
        if task_id is None:
            return None
        return self._tasks.get(task_id, UNKNOWN)

    # Checks a (project, task) pair for a new entry and returns the project id the entry should carry. A task on its
    # own implies its project.
    def check_reference(self, project_id, task_id):
        if project_id is not None and project_id not in self._projects:
            raise InvalidReference(f"Unknown project {project_id}")
        if task_id is None:
            return project_id
        task = self._tasks.get(task_id)
        if task is None:
            raise InvalidReference(f"Unknown task {task_id}")
        if project_id is not None and task.project_id != project_id:
            raise InvalidReference(
                f"Task {task_id} belongs to project {task.project_id}, not project {project_id}")
        return task.project_id

    #endregion === Reference handling ===
