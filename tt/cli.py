import argparse
import logging
import shlex
import sys
from datetime import timedelta
from pathlib import Path

from tt.common.logger import enable_console, log
from tt.core.config import JsonStateStore
from tt.core.errors import AlreadyRunning, TimeTrackerError
from tt.core.session import SessionController
from tt.util.misc import format_duration, parse_duration

WELCOME = "Welcome to the time tracker!"
PROMPT = "Enter a task name to start tracking it. Exit the program by typing 'exit'.\n"
GOODBYE = "Goodbye!"

HELP = """Commands:
  <name>                  start a task (when no timer is running)
  start NAME [@P] [#T]    start a task, optionally in project P / task T
  stop                    stop the running task
  status                  show the running task and its elapsed time
  list                    list all entries
  today                   entries and total for today
  week                    totals for each day of this week
  add NAME DURATION       add a finished entry, e.g. add "Review" 1h30m
  delete ID               delete an entry
  projects                list projects and their tasks
  project add NAME        create a project
  project rm ID           delete a project (its entries are kept)
  task add PROJECT NAME   create a task in a project
  task rm ID              delete a task (its entries are kept)
  set KEY VALUE           change a setting
  help                    show this help
  exit                    stop any running task, show the summary and quit"""

_DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

# (min, max) argument counts per command. A line that doesn't fit is a task name when idle.
_ARITY = {
    "start": (1, None),
    "stop": (0, 0),
    "status": (0, 0),
    "list": (0, 0),
    "today": (0, 0),
    "week": (0, 0),
    "add": (2, None),
    "delete": (1, 1),
    "projects": (0, 0),
    "project": (2, None),
    "task": (2, None),
    "set": (2, 2),
    "help": (0, 0),
}


def _fits(tokens):
    low, high = _ARITY[tokens[0]]
    n = len(tokens) - 1
    return n >= low and (high is None or n <= high)


def _ref(token, marker):
    if token.startswith(marker) and token[1:].isdigit():
        return int(token[1:])
    return None


# Line-based terminal front end over a SessionController.
class CommandLoop:

    def __init__(self, controller, stdin=None, stdout=None):
        self.controller = controller
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._commands = {
            "start": self._cmd_start,
            "stop": self._cmd_stop,
            "status": self._cmd_status,
            "list": self._cmd_list,
            "today": self._cmd_today,
            "week": self._cmd_week,
            "add": self._cmd_add,
            "delete": self._cmd_delete,
            "projects": self._cmd_projects,
            "project": self._cmd_project,
            "task": self._cmd_task,
            "set": self._cmd_set,
            "help": self._cmd_help,
        }

    def say(self, text=""):
        print(text, file=self.stdout)

    def _read(self):
        if not self.controller.is_running():
            self.stdout.write(PROMPT)
        self.stdout.write("> ")
        self.stdout.flush()
        line = self.stdin.readline()
        return None if line == "" else line.strip()

    # Runs until exit or end of input. Returns the process exit code.
    def run(self):
        self.say(WELCOME)
        if self.controller.load_warning:
            self.say(f"Warning: saved data could not be loaded, starting empty ({self.controller.load_warning})")
        active = self.controller.active_entry()
        if active is not None:
            self.say(f"Task '{active.description}' is still running ({format_duration(self.controller.elapsed())}), "
                     f"stop the task with 'stop'")

        while True:
            try:
                line = self._read()
            except KeyboardInterrupt:
                line = None
            if line is None:
                return self._finish(forced=True)
            if not line:
                continue
            if line == "exit":
                try:
                    return self._finish()
                except AlreadyRunning as e:
                    self.say(str(e))
                    continue
            self.handle(line)
            if self.controller.unsaved:
                self.say("Warning: saving failed, changes are only kept in memory")

    def handle(self, line):
        try:
            tokens = shlex.split(line)
        except ValueError as e:
            # Unbalanced quotes are fine in a task name
            tokens = None
            if self.controller.is_running():
                self.say(f"Could not parse '{line}': {e}")
                return
        if tokens == []:
            return
        handler = self._commands.get(tokens[0]) if tokens else None
        try:
            if handler is not None and _fits(tokens):
                handler(tokens[1:])
            elif self.controller.is_running():
                self.say(f"Unknown command '{line}'. A task is running, stop the task with 'stop'")
            else:
                self._start(line, None, None)
        except TimeTrackerError as e:
            log.info(f"Command '{line}' failed: {e}")
            self.say(str(e))
        except ValueError as e:
            self.say(str(e))

    #region === Commands ===

    def _start(self, name, project_id, task_id):
        self.controller.start(name, project_id=project_id, task_id=task_id)
        self.say(f"Started task '{name}', stop the task with 'stop'")

    def _cmd_start(self, args):
        names = [a for a in args if _ref(a, "@") is None and _ref(a, "#") is None]
        project_id = next((_ref(a, "@") for a in args if _ref(a, "@") is not None), None)
        task_id = next((_ref(a, "#") for a in args if _ref(a, "#") is not None), None)
        self._start(" ".join(names), project_id, task_id)

    def _cmd_stop(self, args):
        entry = self.controller.stop()
        self.say(f"Task '{entry.description}' completed in {format_duration(entry.duration())}.")

    def _cmd_status(self, args):
        active = self.controller.active_entry()
        if active is None:
            self.say("No task is running.")
        else:
            self.say(f"'{active.description}' running for {format_duration(self.controller.elapsed())}")

    def _print_entries(self, entries):
        now = self.controller.clock.now()
        if not entries:
            self.say("No entries.")
        for entry in entries:
            end = entry.end.strftime("%H:%M:%S") if entry.end else "running"
            aggregator = self.controller.aggregator
            label = aggregator.label_for(aggregator.key_for(entry))
            self.say(f"{entry.id:>4}  {entry.start:%Y-%m-%d %H:%M:%S} - {end:<8}  "
                     f"{format_duration(entry.duration(now))}  {entry.description}  [{label}]")

    def _cmd_list(self, args):
        self._print_entries(self.controller.list_entries())

    def _cmd_today(self, args):
        view = self.controller.show_day()
        self._print_entries(view.entries)
        self.say(f"Today: {format_duration(view.total)}")

    def _cmd_week(self, args):
        today = self.controller.aggregator.today()
        totals = self.controller.show_week()
        for day, total in totals.items():
            marker = "*" if day == today else " "
            self.say(f"{marker}{_DAY_NAMES[day.weekday()]} {day.isoformat()}  {format_duration(total)}")
        self.say(f" Week: {format_duration(sum(totals.values(), timedelta(0)))}")

    def _cmd_add(self, args):
        if len(args) < 2:
            raise ValueError("Usage: add NAME DURATION")
        entry_id = self.controller.add_entry(" ".join(args[:-1]), parse_duration(args[-1]))
        self.say(f"Added entry {entry_id}.")

    def _cmd_delete(self, args):
        if len(args) != 1 or not args[0].isdigit():
            raise ValueError("Usage: delete ID")
        removed = self.controller.delete_entry(int(args[0]))
        self.say(f"Deleted entry {removed.id} '{removed.description}'.")

    def _cmd_projects(self, args):
        projects = self.controller.projects()
        if not projects:
            self.say("No projects.")
        for project in projects:
            self.say(f"{project.id:>4}  {project.name}")
            for task in self.controller.tasks_for_project(project.id):
                self.say(f"      #{task.id} {task.name}")

    def _cmd_project(self, args):
        if len(args) >= 2 and args[0] == "add":
            project = self.controller.create_project(" ".join(args[1:]))
            self.say(f"Created project {project.id} '{project.name}'.")
        elif len(args) == 2 and args[0] == "rm" and args[1].isdigit():
            self.controller.delete_project(int(args[1]))
            self.say(f"Deleted project {args[1]}.")
        else:
            raise ValueError("Usage: project add NAME | project rm ID")

    def _cmd_task(self, args):
        if len(args) >= 3 and args[0] == "add" and args[1].isdigit():
            task = self.controller.create_task(int(args[1]), " ".join(args[2:]))
            self.say(f"Created task {task.id} '{task.name}'.")
        elif len(args) == 2 and args[0] == "rm" and args[1].isdigit():
            self.controller.delete_task(int(args[1]))
            self.say(f"Deleted task {args[1]}.")
        else:
            raise ValueError("Usage: task add PROJECT_ID NAME | task rm ID")

    def _cmd_set(self, args):
        if len(args) != 2:
            raise ValueError("Usage: set KEY VALUE")
        value = self.controller.set_setting(args[0], args[1])
        self.say(f"{args[0]} = {value}")

    def _cmd_help(self, args):
        self.say(HELP)

    #endregion === Commands ===

    # Ends the session and prints the summary. Without more input there's no way to honour "require_stop", so a forced
    # finish always stops the timer first.
    def _finish(self, forced=False):
        if forced and self.controller.is_running():
            self.controller.stop()
        summary = self.controller.exit()

        self.say("\n\nTasks completed:")
        for entry in summary.session_entries:
            self.say(f"{entry.description}: {format_duration(entry.duration())}")

        if summary.by_project_and_task:
            self.say("\nTotals:")
            for key, total in summary.by_project_and_task.items():
                self.say(f"{self.controller.aggregator.label_for(key)}: {format_duration(total)}")
        self.say(f"\nToday: {format_duration(summary.today_total)}")
        for warning in summary.warnings:
            self.say(f"Warning: {warning}")

        self.say(f"\n\n{GOODBYE}")
        return 0 if summary.saved else 1


def build_parser():
    parser = argparse.ArgumentParser(prog="time-tracker", description="Track time spent on tasks.")
    parser.add_argument("--data-dir", help="directory for state, snapshots and logs (overrides TT_HOME)")
    parser.add_argument("--state-file", help="state file to use instead of the one in the data directory")
    parser.add_argument("--gui", action="store_true", help="open the window instead of the terminal loop")
    parser.add_argument("-v", "--verbose", action="store_true", help="also log to the console")
    return parser


def make_session(args):
    from tt.common.setup import PATHS, ProjectPaths
    paths = ProjectPaths.build(Path(args.data_dir)) if args.data_dir else PATHS
    store = JsonStateStore(path=args.state_file or paths.state_file, snapshot_dir=paths.snapshots)
    return SessionController(store).open()


def main(argv=None, stdin=None, stdout=None):
    args = build_parser().parse_args(argv)
    if args.verbose:
        enable_console(log, logging.DEBUG)

    controller = make_session(args)
    if args.gui:
        from tt.ui.app import run_window
        return run_window(controller)
    return CommandLoop(controller, stdin=stdin, stdout=stdout).run()
