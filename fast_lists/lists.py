"""List and todo operations for a single session.

Every operation works on the SessionData handed to ListManager; nothing here
touches the request, the cookie or the session store. Ids are derived from
the current contents (max + 1) rather than from a persistent counter, so an
id can be handed out again once the item holding the highest id is gone.
"""
from typing import Iterator, Optional, Sequence, TypeVar
import logging

from .models import SessionData, Todo, TodoList

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 1
NAME_MAX_LENGTH = 100

LIST_NAME_LENGTH_ERROR = f"The list name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters."
LIST_NAME_TAKEN_ERROR = "List name already in use."
TODO_NAME_LENGTH_ERROR = f"The todo name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters."
TODO_NAME_TAKEN_ERROR = "That todo already exists."
LIST_NOT_FOUND_ERROR = "The specified list was not found."
TODO_NOT_FOUND_ERROR = "The specified todo was not found."


class ValidationError(ValueError):
    """A list or todo name failed length or uniqueness checks."""


class NotFoundError(LookupError):
    """A list or todo id does not exist in the session."""

    def __init__(self, message: str, list_id: Optional[int] = None, todo_id: Optional[int] = None):
        super().__init__(message)
        self.list_id = list_id
        self.todo_id = todo_id


def _name_length_ok(name: str) -> bool:
    return NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH


def error_for_list_name(name: str, lists: Sequence[TodoList]) -> Optional[str]:
    """Return an error message if the list name is invalid, None otherwise."""
    if not _name_length_ok(name):
        return LIST_NAME_LENGTH_ERROR
    if any(lst.name == name for lst in lists):
        return LIST_NAME_TAKEN_ERROR
    return None


def error_for_todo_name(name: str, todos: Sequence[Todo]) -> Optional[str]:
    """Return an error message if the todo name is invalid, None otherwise."""
    if not _name_length_ok(name):
        return TODO_NAME_LENGTH_ERROR
    if any(todo.name == name for todo in todos):
        return TODO_NAME_TAKEN_ERROR
    return None


def next_id(items) -> int:
    return max((item.id for item in items), default=0) + 1


def is_complete(lst: TodoList) -> bool:
    """A list is complete when it has todos and every one of them is done."""
    return len(lst.todos) > 0 and all(todo.completed for todo in lst.todos)


def list_class(lst: TodoList) -> Optional[str]:
    return "complete" if is_complete(lst) else None


def todos_count(lst: TodoList) -> int:
    return len(lst.todos)


def todos_completed_count(lst: TodoList) -> int:
    return sum(1 for todo in lst.todos if todo.completed)


def todos_remaining_count(lst: TodoList) -> int:
    return todos_count(lst) - todos_completed_count(lst)


T = TypeVar('T')


def _partition_in_order(items: Sequence[T], done) -> Iterator[tuple[T, int]]:
    # stable partition: unfinished first, then finished, original order kept
    pending = [(item, idx) for idx, item in enumerate(items) if not done(item)]
    finished = [(item, idx) for idx, item in enumerate(items) if done(item)]
    yield from pending
    yield from finished


def lists_in_order(lists: Sequence[TodoList]) -> Iterator[tuple[TodoList, int]]:
    """Yield (list, original_index), incomplete lists before complete ones."""
    return _partition_in_order(lists, is_complete)


def todos_in_order(todos: Sequence[Todo]) -> Iterator[tuple[Todo, int]]:
    """Yield (todo, original_index), open todos before completed ones."""
    return _partition_in_order(todos, lambda todo: todo.completed)


class ListManager:
    """Operations on the lists held by one session."""

    def __init__(self, data: SessionData):
        self.data = data

    @property
    def lists(self) -> list[TodoList]:
        return self.data.lists

    def get_list(self, list_id: int) -> TodoList:
        for lst in self.data.lists:
            if lst.id == list_id:
                return lst
        raise NotFoundError(LIST_NOT_FOUND_ERROR, list_id=list_id)

    def get_todo(self, list_id: int, todo_id: int) -> Todo:
        lst = self.get_list(list_id)
        for todo in lst.todos:
            if todo.id == todo_id:
                return todo
        raise NotFoundError(TODO_NOT_FOUND_ERROR, list_id=list_id, todo_id=todo_id)

    def create_list(self, name: str) -> TodoList:
        name = name.strip()
        error = error_for_list_name(name, self.data.lists)
        if error:
            raise ValidationError(error)
        lst = TodoList(id=next_id(self.data.lists), name=name)
        self.data.lists.append(lst)
        logger.info('created list id=%s name=%r', lst.id, lst.name)
        return lst

    def rename_list(self, list_id: int, new_name: str) -> TodoList:
        lst = self.get_list(list_id)
        new_name = new_name.strip()
        # the list's own current name counts as taken
        error = error_for_list_name(new_name, self.data.lists)
        if error:
            raise ValidationError(error)
        lst.name = new_name
        logger.info('renamed list id=%s name=%r', lst.id, lst.name)
        return lst

    def delete_list(self, list_id: int) -> bool:
        before = len(self.data.lists)
        self.data.lists = [lst for lst in self.data.lists if lst.id != list_id]
        removed = len(self.data.lists) != before
        logger.info('delete list id=%s removed=%s', list_id, removed)
        return removed

    def add_todo(self, list_id: int, name: str) -> Todo:
        lst = self.get_list(list_id)
        name = name.strip()
        error = error_for_todo_name(name, lst.todos)
        if error:
            raise ValidationError(error)
        todo = Todo(id=next_id(lst.todos), name=name, completed=False)
        lst.todos.append(todo)
        logger.info('added todo id=%s to list id=%s', todo.id, list_id)
        return todo

    def delete_todo(self, list_id: int, todo_id: int) -> None:
        lst = self.get_list(list_id)
        todo = self.get_todo(list_id, todo_id)
        lst.todos = [t for t in lst.todos if t.id != todo.id]
        logger.info('deleted todo id=%s from list id=%s', todo_id, list_id)

    def set_todo_completed(self, list_id: int, todo_id: int, completed: bool) -> Todo:
        todo = self.get_todo(list_id, todo_id)
        todo.completed = completed
        logger.info('todo id=%s in list id=%s completed=%s', todo_id, list_id, completed)
        return todo

    def complete_all(self, list_id: int) -> TodoList:
        lst = self.get_list(list_id)
        for todo in lst.todos:
            todo.completed = True
        logger.info('completed all %d todos in list id=%s', len(lst.todos), list_id)
        return lst
