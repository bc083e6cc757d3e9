"""
Command Line Interface for tasknest.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from pydantic import ValidationError

from .version import VERSION
from .config import Config, load_config, resolve_storage_path
from .data import Storage, StorageFactory
from .models import GroupBy, Order, TaskDraft, TaskPatch
from .prompt import prompt_task
from .recovery import SyncError, TaskManagerError
from .render import Printer
from .sync import GitSync
from .logs import get_logger

log = get_logger("cli")

ALIASES = {
    "a": "add",
    "e": "edit",
    "c": "check",
    "i": "increment",
    "d": "delete",
    "mv": "move",
    "x": "extract",
    "g": "group",
    "t": "template",
    "ls": "list",
}

def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]

class TaskCommandGroup(click.Group):
    """Resolves one-letter aliases and reports known errors without a traceback."""

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, ALIASES.get(cmd_name, cmd_name))

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except TaskManagerError as e:
            log.debug(f"Command failed: {e!r}")
            click.echo(click.style(f"❌ {e}", fg="red"), err=True)
            ctx.exit(1)
        except ValidationError as e:
            click.echo(click.style(f"❌ Invalid value, {_first_error(e)}", fg="red"), err=True)
            ctx.exit(1)

class IdListType(click.ParamType):
    """A task id, or several joined by ','."""

    name = "ids"

    def convert(self, value, param, ctx):
        if isinstance(value, list):
            return value
        try:
            ids = [int(part) for part in str(value).split(",") if part.strip()]
        except ValueError:
            self.fail(f"'{value}' should be a task id or ids joined by ','", param, ctx)
        if not ids or any(task_id < 0 for task_id in ids):
            self.fail(f"'{value}' should be a task id or ids joined by ','", param, ctx)
        return ids

TASK_IDS = IdListType()

class CliContext:
    """Lazily opens the storage selected by the options and the user config."""

    def __init__(self, config: Config, storage_path: Path, group_by: GroupBy, order: Order):
        self.config = config
        self.storage_path = storage_path
        self.group_by = group_by
        self.order = order
        self._storage: Optional[Storage] = None

    def open_sync(self, path: Path) -> Optional[GitSync]:
        if not self.config.auto_sync:
            return None
        try:
            return GitSync(path)
        except SyncError as e:
            log.warning(f"Git sync disabled: {e}")
            return None

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            self._storage = Storage(self.storage_path, self.open_sync(self.storage_path))
        return self._storage

    def printer(self, storage: Optional[Storage] = None) -> Printer:
        return Printer((storage or self.storage).meta)

    def echo(self, printer: Printer, storage: Optional[Storage] = None):
        storage = storage or self.storage
        storage.order(self.order)
        click.echo(printer.render(storage, self.group_by), color=None if self.config.color else False)
        for warning in storage.sync_warnings:
            click.echo(click.style(f"⚠️  {warning}", fg="yellow"), err=True)

pass_cli = click.make_pass_decorator(CliContext)

def _ids_label(ids: List[int]) -> str:
    label = "Task" if len(ids) == 1 else "Tasks"
    return f"{label} '{','.join(str(i) for i in ids)}'"

def task_attribute_options(func):
    """Options shared by the commands that write task attributes."""
    options = [
        click.option('--state', '-s', help='State name'),
        click.option('--description', '-d', help='Description'),
        click.option('--priority', '-p', help='Priority as repeated markers, ie. "!!"'),
        click.option('--group', '-g', help='Group name'),
        click.option('--due', 'due_date', help='Due date as DD/MM/YYYY'),
    ]
    for option in reversed(options):
        func = option(func)
    return func

def _given(**attributes) -> Dict[str, Any]:
    return {key: value for key, value in attributes.items() if value is not None}


@click.group(cls=TaskCommandGroup, invoke_without_command=True)
@click.option('--file', '-f', 'storage_file', type=click.Path(dir_okay=False, path_type=Path), help='Storage file to use')
@click.option('--group-by', type=click.Choice([g.value for g in GroupBy]), default=None, help='Group the task list by this attribute')
@click.option('--order', type=click.Choice([o.value for o in Order]), default=None, help='Order of the root tasks')
@click.version_option(version=VERSION, prog_name="task")
@click.pass_context
def main(ctx, storage_file, group_by, order):
    """
    tasknest - a hierarchical task manager for the terminal.

    Tasks live in a single JSON file, in the current directory or in your
    global storage. Ids can be joined by ',' to act on several tasks at once.
    """
    config = load_config()
    ctx.obj = CliContext(
        config=config,
        storage_path=resolve_storage_path(config, storage_file),
        group_by=GroupBy(group_by) if group_by else config.group_by,
        order=Order(order) if order else config.order,
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(list_tasks)


@main.command()
@click.option('--global', 'use_global', is_flag=True, help='Create the global storage instead of a local one')
@click.pass_context
def init(ctx, use_global):
    """Create a new storage file."""
    cli: CliContext = ctx.obj
    explicit = ctx.parent.params.get('storage_file')
    if explicit:
        path = explicit
    elif use_global:
        path = cli.config.global_storage
    else:
        path = Path.cwd() / cli.config.storage_file

    storage = StorageFactory.init(path)
    cli._storage = storage
    printer = cli.printer(storage).add_feedback(f"✅ Storage created at {path}")
    cli.echo(printer, storage)


@main.command('list')
@pass_cli
def list_tasks(cli: CliContext):
    """Show all tasks."""
    cli.echo(cli.printer())


@main.command()
@click.argument('words', nargs=-1)
@task_attribute_options
@click.option('--template', '-t', help='Copy the subtasks of this template')
@pass_cli
def add(cli: CliContext, words, state, description, priority, group, due_date, template):
    """
    Add a task: task add [PARENT_ID] NAME...

    A leading numeric word is the id of the parent task. Without a name the
    fields are asked interactively.
    """
    storage = cli.storage
    words = list(words)
    parent_id = None
    if words and words[0].isdigit():
        parent_id = int(words.pop(0))

    name = " ".join(words).strip()
    if name:
        attributes = _given(name=name, state=state, description=description,
                            priority=priority, group=group, due_date=due_date)
    else:
        attributes, template = prompt_task(storage.meta)
        attributes = _given(**attributes)

    task_id = storage.add_task(TaskDraft.model_validate(attributes), parent_id, template)

    printer = cli.printer().add_feedback(f"Task n°{task_id} added")
    if parent_id is not None:
        printer.set_view('specific', [parent_id])
    cli.echo(printer)


@main.command()
@click.argument('ids', type=TASK_IDS)
@click.argument('words', nargs=-1)
@task_attribute_options
@click.option('--recursive', '-r', is_flag=True, help='Apply to subtasks as well')
@pass_cli
def edit(cli: CliContext, ids, words, state, description, priority, group, due_date, recursive):
    """Edit tasks: task edit IDS [NAME...]"""
    storage = cli.storage
    attributes = _given(name=" ".join(words).strip() or None, state=state, description=description,
                        priority=priority, group=group, due_date=due_date)

    if not attributes and len(ids) == 1:
        # a "none" or blank answer clears the field
        prompted, _ = prompt_task(storage.meta, storage.get(ids[0]))
        attributes = TaskPatch.model_validate(prompted)

    storage.edit_task(ids, attributes, recursive)
    cli.echo(cli.printer().add_feedback(f"{_ids_label(ids)} edited").set_view('specific', ids))


@main.command()
@click.argument('ids', type=TASK_IDS)
@click.option('--recursive', '-r', is_flag=True, help='Check subtasks as well')
@pass_cli
def check(cli: CliContext, ids, recursive):
    """Put tasks in the last state."""
    cli.storage.check_task(ids, recursive)
    cli.echo(cli.printer().add_feedback(f"{_ids_label(ids)} checked").set_view('specific', ids))


@main.command()
@click.argument('ids', type=TASK_IDS)
@click.option('--recursive', '-r', is_flag=True, help='Increment subtasks as well')
@pass_cli
def increment(cli: CliContext, ids, recursive):
    """Move tasks to their next state."""
    cli.storage.increment_task(ids, recursive)
    cli.echo(cli.printer().add_feedback(f"{_ids_label(ids)} incremented").set_view('specific', ids))


@main.command()
@click.argument('ids', type=TASK_IDS)
@pass_cli
def delete(cli: CliContext, ids):
    """Delete tasks and all their subtasks."""
    storage = cli.storage
    printer = cli.printer()
    if len(ids) == 1:
        location = storage.tasks.find(ids[0])
        if location.parent is not None:
            printer.set_view('specific', [location.parent.id])

    storage.delete_task(ids)
    cli.echo(printer.add_feedback(f"{_ids_label(ids)} deleted"))


@main.command()
@click.argument('ids', type=TASK_IDS)
@click.argument('destination', type=int)
@pass_cli
def move(cli: CliContext, ids, destination):
    """Move tasks under another task: task move IDS DESTINATION_ID"""
    cli.storage.move_task(ids, destination)
    cli.echo(cli.printer()
             .add_feedback(f"{_ids_label(ids)} moved to task n°{destination}")
             .set_view('specific', [destination]))


@main.command()
@click.argument('ids', type=TASK_IDS)
@click.argument('destination', type=click.Path(dir_okay=False, path_type=Path))
@pass_cli
def extract(cli: CliContext, ids, destination):
    """Move tasks into a new storage file: task extract IDS PATH"""
    new_storage = StorageFactory.extract(destination, cli.storage, ids)
    cli.echo(cli.printer(new_storage).add_feedback(f"{_ids_label(ids)} extracted to {destination}"), new_storage)
    for warning in cli.storage.sync_warnings:
        click.echo(click.style(f"⚠️  {warning}", fg="yellow"), err=True)


@main.group(invoke_without_command=True)
@click.pass_context
def group(ctx):
    """Manage groups."""
    if ctx.invoked_subcommand is None:
        storage = ctx.obj.storage
        click.echo("Groups:")
        for g in storage.meta.groups:
            click.echo(f"- {g.name} ({g.hex_color})")
        if not storage.meta.groups:
            click.echo("(no groups defined)")


@group.command('add')
@click.argument('name')
@click.argument('color')
@pass_cli
def group_add(cli: CliContext, name, color):
    """Add a group, or change its color: task group add NAME #rrggbb"""
    created = cli.storage.add_group(name, color)
    click.echo(f"Group '{name}' {'added' if created else 'updated'} with color {color}")


@group.command('remove')
@click.argument('name')
@pass_cli
def group_remove(cli: CliContext, name):
    """Remove a group. Tasks keep their group name."""
    if cli.storage.meta.find_group(name) is None:
        click.echo(f"Group '{name}' not found")
        return
    cli.storage.remove_group(name)
    click.echo(f"Group '{name}' removed")


@main.group(invoke_without_command=True)
@click.pass_context
def template(ctx):
    """Manage templates."""
    if ctx.invoked_subcommand is None:
        storage = ctx.obj.storage
        click.echo("Templates:")
        for t in storage.meta.templates:
            click.echo(f"- {t.name} ({len(t.subtasks)} subtasks)")
        if not storage.meta.templates:
            click.echo("(no templates defined)")


@template.command('add')
@click.argument('name')
@click.option('--subs', default="", help='Subtask names joined by ","')
@pass_cli
def template_add(cli: CliContext, name, subs):
    """Create or replace a template: task template add NAME --subs "a,b" """
    subtask_names = [s.strip() for s in subs.split(",") if s.strip()]
    created = cli.storage.add_template(name, subtask_names)
    click.echo(f"Template '{name}' {'created' if created else 'updated'} with {len(subtask_names)} subtasks")


@template.command('remove')
@click.argument('name')
@pass_cli
def template_remove(cli: CliContext, name):
    """Remove a template."""
    if cli.storage.meta.find_template(name) is None:
        click.echo(f"Template '{name}' not found")
        return
    cli.storage.remove_template(name)
    click.echo(f"Template '{name}' removed")


@main.group(invoke_without_command=True)
@click.pass_context
def git(ctx):
    """Synchronize the storage file with a git remote."""
    if ctx.invoked_subcommand is None:
        sync = GitSync(ctx.obj.storage_path)
        if sync.is_configured:
            click.echo("Git is initialized with:")
            click.echo(f"Remote: {sync.config.remote_url}")
            click.echo(f"Remote Name: {sync.config.remote_name}")
            click.echo(f"Branch: {sync.config.branch_name}")
        else:
            click.echo("Git is not initialized. Initialize Git with:")
            click.echo("  task git init <remote-url> [remote-name] [branch-name]")


@git.command('init')
@click.argument('remote_url')
@click.argument('remote_name', default='origin')
@click.argument('branch_name', default='main')
@pass_cli
def git_init(cli: CliContext, remote_url, remote_name, branch_name):
    """Initialize git next to the storage file."""
    GitSync(cli.storage_path).init(remote_url, remote_name, branch_name)
    click.echo(f"Git repository initialized with remote: {remote_url}")


@git.command('push')
@pass_cli
def git_push(cli: CliContext):
    """Commit and push the storage file."""
    GitSync(cli.storage_path).commit_and_sync()
    click.echo("Changes committed and pushed to remote repository")


@git.command('pull')
@pass_cli
def git_pull(cli: CliContext):
    """Pull the storage file from the remote."""
    GitSync(cli.storage_path).pull()
    click.echo("Changes pulled from remote repository")


@git.command('status')
@pass_cli
def git_status(cli: CliContext):
    """Show git status of the storage directory."""
    click.echo("Git Status:")
    click.echo(GitSync(cli.storage_path).status() or "(no changes)")


if __name__ == "__main__":
    main()
