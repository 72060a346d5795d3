from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import CatalogError

OPTION_KINDS = ("flag", "number", "text", "select", "multiselect")

# Built-in MaaCore tasks run through one CLI command with a JSON task config.
CORE_TASK_COMMAND = "run"


@dataclass(frozen=True)
class OptionSpec:
    """One advanced option.

    ``flag`` is the command-line flag for CLI tasks. Options of built-in
    core tasks have no flag; their ``key`` is the task-config param name.
    """

    key: str
    label: str
    kind: str
    flag: str = ""
    default: Any = None
    placeholder: str = ""
    choices: list[dict[str, Any]] | None = None


@dataclass(frozen=True)
class TaskDefinition:
    task_id: str
    title: str
    command: str
    placeholder: str = ""
    description: str = ""
    group: str = ""
    supports_dry_run: bool = False
    has_advanced: bool = False
    options: list[OptionSpec] = field(default_factory=list)
    task_type: str | None = None

    @property
    def is_core_task(self) -> bool:
        return self.task_type is not None


@dataclass(frozen=True)
class TaskCategory:
    category_id: str
    title: str
    description: str
    tasks: tuple[TaskDefinition, ...]


def _choices(*pairs: tuple[Any, str]) -> list[dict[str, Any]]:
    return [{"value": value, "label": label} for value, label in pairs]


_REFERENCE_PLACEHOLDER = "maa://1234 or a local file path"
_STAR_CHOICES = _choices((1, "1★"), (2, "2★"), (3, "3★"), (4, "4★"), (5, "5★"), (6, "6★"))

# ---------------------------------------------------------------------------
# Built-in catalog
# ---------------------------------------------------------------------------

DEFAULT_CATEGORIES: tuple[TaskCategory, ...] = (
    TaskCategory(
        category_id="automation",
        title="Automation",
        description="Daily automation routine.",
        tasks=(
            TaskDefinition(
                task_id="startup",
                title="Start Game",
                command="startup",
                placeholder="Client type (Official/Bilibili/YoStarEN)",
                description="Launch the game client and wait for the main screen.",
                group="automation",
                has_advanced=True,
                options=[
                    OptionSpec("address", "Device Address", "text", "-a", placeholder="127.0.0.1:5555"),
                    OptionSpec("account", "Switch to Account", "text", "--account", placeholder="Account name"),
                ],
            ),
            TaskDefinition(
                task_id="closedown",
                title="Close Game",
                command="closedown",
                placeholder="Client type (defaults to Official)",
                description="Close the game client.",
                group="automation",
                has_advanced=True,
                options=[
                    OptionSpec("address", "Device Address", "text", "-a", placeholder="127.0.0.1:5555"),
                ],
            ),
            TaskDefinition(
                task_id="fight",
                title="Combat",
                command="fight",
                placeholder="Stage name (e.g. 1-7, CE-6)",
                description="Spend sanity on a stage.",
                group="automation",
                has_advanced=True,
                options=[
                    OptionSpec("medicine", "Sanity Potions", "number", "-m", placeholder="0"),
                    OptionSpec(
                        "expiringMedicine",
                        "Expiring Sanity Potions",
                        "number",
                        "--expiring-medicine",
                        placeholder="0",
                    ),
                    OptionSpec("stone", "Originite Prime", "number", "--stone", placeholder="0"),
                    OptionSpec("times", "Battle Count", "number", "--times", placeholder="Unlimited"),
                    OptionSpec(
                        "series",
                        "Series Count",
                        "select",
                        "--series",
                        default="",
                        choices=_choices(
                            ("", "Default (1)"),
                            ("-1", "Disable switching"),
                            ("0", "Auto maximum"),
                            ("2", "2"),
                            ("3", "3"),
                            ("4", "4"),
                            ("5", "5"),
                            ("6", "6"),
                        ),
                    ),
                    OptionSpec("reportPenguin", "Report drops to Penguin Stats", "flag", "--report-to-penguin"),
                    OptionSpec("reportYituliu", "Report drops to Yituliu", "flag", "--report-to-yituliu"),
                ],
            ),
            TaskDefinition(
                task_id="infrast",
                title="Base Shifts",
                command=CORE_TASK_COMMAND,
                description="Rotate base operators and collect products.",
                group="automation",
                task_type="Infrast",
                has_advanced=True,
                options=[
                    OptionSpec(
                        "mode",
                        "Shift Mode",
                        "select",
                        default="0",
                        choices=_choices(("0", "Default shifts"), ("10000", "Custom shifts")),
                    ),
                    OptionSpec(
                        "facility",
                        "Facilities",
                        "multiselect",
                        default=["Mfg", "Trade", "Power", "Control", "Reception", "Office", "Dorm"],
                        choices=_choices(
                            ("Mfg", "Factory"),
                            ("Trade", "Trading Post"),
                            ("Power", "Power Plant"),
                            ("Control", "Control Center"),
                            ("Reception", "Reception Room"),
                            ("Office", "Office"),
                            ("Dorm", "Dormitory"),
                        ),
                    ),
                    OptionSpec(
                        "drones",
                        "Drone Usage",
                        "select",
                        default="Money",
                        choices=_choices(
                            ("Money", "LMD"),
                            ("SyntheticJade", "Orundum"),
                            ("CombatRecord", "Battle Records"),
                            ("PureGold", "Pure Gold"),
                            ("OriginStone", "Originium Shards"),
                            ("Chip", "Chips"),
                        ),
                    ),
                    OptionSpec("threshold", "Morale Threshold", "number", placeholder="0.3"),
                    OptionSpec("replenish", "Replenish Originium Shards", "flag"),
                ],
            ),
            TaskDefinition(
                task_id="recruit",
                title="Recruitment",
                command=CORE_TASK_COMMAND,
                description="Run public recruitment.",
                group="automation",
                task_type="Recruit",
                has_advanced=True,
                options=[
                    OptionSpec("refresh", "Refresh Tags", "flag"),
                    OptionSpec("select", "Recruit Rarities", "multiselect", default=[4, 5, 6], choices=_STAR_CHOICES),
                    OptionSpec("confirm", "Confirm Rarities", "multiselect", default=[3, 4], choices=_STAR_CHOICES),
                    OptionSpec("times", "Recruit Count", "number", placeholder="4"),
                    OptionSpec("set_time", "Set Recruit Time", "flag"),
                    OptionSpec("expedite", "Use Expedited Plans", "flag"),
                    OptionSpec("expedite_times", "Expedite Count", "number", placeholder="0"),
                    OptionSpec("skip_robot", "Skip Robot Tags", "flag"),
                ],
            ),
            TaskDefinition(
                task_id="mall",
                title="Credit Store",
                command=CORE_TASK_COMMAND,
                description="Visit friends, collect credits and shop.",
                group="automation",
                task_type="Mall",
                has_advanced=True,
                options=[
                    OptionSpec("shopping", "Auto Shopping", "flag"),
                    OptionSpec("buy_first", "Buy First", "text", placeholder="Recruitment Permit,LMD (comma separated)"),
                    OptionSpec("blacklist", "Blacklist", "text", placeholder="Furniture Part,Carbon (comma separated)"),
                    OptionSpec("force_shopping_if_credit_full", "Force shopping when credits are full", "flag"),
                ],
            ),
            TaskDefinition(
                task_id="award",
                title="Collect Rewards",
                command=CORE_TASK_COMMAND,
                description="Collect daily and weekly rewards.",
                group="automation",
                task_type="Award",
                has_advanced=True,
                options=[
                    OptionSpec("award", "Daily Rewards", "flag"),
                    OptionSpec("mail", "Mail", "flag"),
                    OptionSpec("recruit", "Recruitment Rewards", "flag"),
                    OptionSpec("orundum", "Orundum Rewards", "flag"),
                    OptionSpec("mining", "Mining Rewards", "flag"),
                    OptionSpec("specialaccess", "Special Access", "flag"),
                ],
            ),
        ),
    ),
    TaskCategory(
        category_id="combat",
        title="Auto Combat",
        description="Copilot jobs and special combat modes.",
        tasks=(
            TaskDefinition(
                task_id="copilot",
                title="Copilot",
                command="copilot",
                placeholder=_REFERENCE_PLACEHOLDER,
                description="Clear stages with a copilot job; accepts single jobs and job collections.",
                group="combat",
                supports_dry_run=True,
                has_advanced=True,
                options=[
                    OptionSpec("ignoreRequirements", "Ignore operator requirements", "flag", "--ignore-requirements"),
                    OptionSpec(
                        "raid",
                        "Raid Mode",
                        "select",
                        "--raid",
                        default="0",
                        choices=_choices(("0", "Normal"), ("1", "Raid"), ("2", "Both (normal + raid)")),
                    ),
                    OptionSpec(
                        "formationIndex",
                        "Formation",
                        "select",
                        "--formation-index",
                        default="",
                        choices=_choices(
                            ("", "Current formation"),
                            ("1", "Formation 1"),
                            ("2", "Formation 2"),
                            ("3", "Formation 3"),
                            ("4", "Formation 4"),
                        ),
                    ),
                    OptionSpec("addTrust", "Fill empty slots by trust", "flag", "--add-trust"),
                    OptionSpec("useSanityPotion", "Use sanity potions when short", "flag", "--use-sanity-potion"),
                    OptionSpec(
                        "supportUsage",
                        "Support Unit Usage",
                        "select",
                        "--support-unit-usage",
                        default="0",
                        choices=_choices(
                            ("0", "No support unit"),
                            ("1", "Use when one is missing"),
                            ("2", "Use the named support unit"),
                            ("3", "Use a random support unit"),
                        ),
                    ),
                    OptionSpec("supportName", "Support Unit Name", "text", "--support-unit-name", placeholder="Operator name"),
                ],
            ),
            TaskDefinition(
                task_id="ssscopilot",
                title="Stationary Security Service",
                command="ssscopilot",
                placeholder=_REFERENCE_PLACEHOLDER,
                description="Run a Stationary Security Service copilot job.",
                group="combat",
                has_advanced=True,
                options=[OptionSpec("loopTimes", "Loop Count", "number", "--loop-times", placeholder="1")],
            ),
            TaskDefinition(
                task_id="paradoxcopilot",
                title="Paradox Simulation",
                command="paradoxcopilot",
                placeholder=_REFERENCE_PLACEHOLDER,
                description="Run one or more Paradox Simulation copilot jobs.",
                group="combat",
                supports_dry_run=True,
            ),
        ),
    ),
    TaskCategory(
        category_id="roguelike",
        title="Roguelike",
        description="Integrated Strategies and Reclamation Algorithm.",
        tasks=(
            TaskDefinition(
                task_id="roguelike",
                title="Integrated Strategies",
                command="roguelike",
                placeholder="Theme (Phantom/Mizuki/Sami/Sarkaz/JieGarden)",
                description="Run Integrated Strategies.",
                group="roguelike",
                has_advanced=True,
                options=[
                    OptionSpec(
                        "mode",
                        "Mode",
                        "select",
                        "--mode",
                        default="0",
                        choices=_choices(("0", "Score farming"), ("1", "Originium ingot farming"), ("4", "Exit after floor 3")),
                    ),
                    OptionSpec("squad", "Starting Squad", "text", "--squad", placeholder="Command squad"),
                    OptionSpec("coreChar", "Core Operator", "text", "--core-char", placeholder="Operator name"),
                    OptionSpec("startCount", "Run Count", "number", "--start-count", placeholder="Unlimited"),
                    OptionSpec("useSupport", "Use support unit", "flag", "--use-support"),
                    OptionSpec("stopAtBoss", "Stop before the final boss", "flag", "--stop-at-final-boss"),
                ],
            ),
            TaskDefinition(
                task_id="reclamation",
                title="Reclamation Algorithm",
                command="reclamation",
                placeholder="Theme (Tales)",
                description="Run Reclamation Algorithm.",
                group="roguelike",
                has_advanced=True,
                options=[
                    OptionSpec(
                        "mode",
                        "Mode",
                        "select",
                        "-m",
                        default="0",
                        choices=_choices(("0", "Prosperity, no save"), ("1", "Prosperity by crafting tools")),
                    ),
                    OptionSpec("toolsToCraft", "Tools to Craft", "text", "-C", placeholder="Glow stick"),
                    OptionSpec("numBatches", "Craft Batches", "number", "--num-craft-batches", placeholder="16"),
                ],
            ),
        ),
    ),
)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def _validate_option(task: TaskDefinition, option: OptionSpec) -> None:
    task_id = task.task_id
    if option.kind not in OPTION_KINDS:
        raise CatalogError(f"Task '{task_id}' option '{option.key}' has unknown kind '{option.kind}'.")
    if not task.is_core_task and not option.flag.strip():
        raise CatalogError(f"Task '{task_id}' option '{option.key}' has no command flag.")
    if option.kind not in ("select", "multiselect"):
        if option.choices:
            raise CatalogError(f"Task '{task_id}' option '{option.key}' declares choices but is not a select.")
        return
    if not option.choices:
        raise CatalogError(f"Task '{task_id}' select option '{option.key}' has no choices.")
    values = [choice.get("value") for choice in option.choices]
    if option.kind == "multiselect":
        defaults = option.default if option.default is not None else []
        valid = isinstance(defaults, list) and all(item in values for item in defaults)
    else:
        valid = option.default in values
    if not valid:
        raise CatalogError(
            f"Task '{task_id}' select option '{option.key}' default {option.default!r} is not one of its choices."
        )


class TaskRegistry:
    def __init__(self, categories: tuple[TaskCategory, ...] = DEFAULT_CATEGORIES) -> None:
        self._categories: dict[str, TaskCategory] = {}
        self._tasks: dict[str, TaskDefinition] = {}
        self._task_category: dict[str, str] = {}
        for category in categories:
            self._register_category(category)

    @property
    def task_ids(self) -> list[str]:
        return sorted(self._tasks.keys())

    @property
    def categories(self) -> list[TaskCategory]:
        return list(self._categories.values())

    def _register_category(self, category: TaskCategory) -> None:
        if category.category_id in self._categories:
            raise CatalogError(f"Duplicate category '{category.category_id}'.")
        for task in category.tasks:
            self._validate_task(category, task)
        self._categories[category.category_id] = category
        for task in category.tasks:
            self._tasks[task.task_id] = task
            self._task_category[task.task_id] = category.category_id

    def _validate_task(self, category: TaskCategory, task: TaskDefinition) -> None:
        if task.task_id in self._tasks or sum(1 for t in category.tasks if t.task_id == task.task_id) > 1:
            raise CatalogError(f"Duplicate task '{task.task_id}'.")
        if not task.command.strip():
            raise CatalogError(f"Task '{task.task_id}' has no command.")
        if task.is_core_task and (task.command != CORE_TASK_COMMAND or task.supports_dry_run):
            raise CatalogError(
                f"Core task '{task.task_id}' must use the '{CORE_TASK_COMMAND}' command without dry-run."
            )
        if task.group and task.group != category.category_id:
            raise CatalogError(
                f"Task '{task.task_id}' declares group '{task.group}' but is listed under '{category.category_id}'."
            )
        if task.has_advanced != bool(task.options):
            raise CatalogError(
                f"Task '{task.task_id}' has_advanced={task.has_advanced} does not match its option schema."
            )
        seen: set[str] = set()
        for option in task.options:
            if option.key in seen:
                raise CatalogError(f"Task '{task.task_id}' repeats option key '{option.key}'.")
            seen.add(option.key)
            _validate_option(task, option)

    def get(self, task_id: str) -> TaskDefinition:
        definition = self._tasks.get(task_id)
        if definition is None:
            raise KeyError(f"Unknown task '{task_id}'.")
        return definition

    def options_for(self, task_id: str) -> list[OptionSpec]:
        definition = self._tasks.get(task_id)
        if definition is None:
            return []
        return list(definition.options)

    def category_of(self, task_id: str) -> str:
        category_id = self._task_category.get(task_id)
        if category_id is None:
            raise KeyError(f"Unknown task '{task_id}'.")
        return category_id

    def describe_categories(self) -> list[dict[str, Any]]:
        payload: list[dict[str, Any]] = []
        for category in self._categories.values():
            payload.append(
                {
                    "category_id": category.category_id,
                    "title": category.title,
                    "description": category.description,
                    "tasks": [
                        {
                            "task_id": task.task_id,
                            "title": task.title,
                            "command": task.command,
                            "placeholder": task.placeholder,
                            "description": task.description,
                            "supports_dry_run": task.supports_dry_run,
                            "has_advanced": task.has_advanced,
                            "task_type": task.task_type,
                            "options": [
                                {
                                    "key": option.key,
                                    "label": option.label,
                                    "kind": option.kind,
                                    "flag": option.flag,
                                    "default": option.default,
                                    "placeholder": option.placeholder,
                                    "choices": option.choices,
                                }
                                for option in task.options
                            ],
                        }
                        for task in category.tasks
                    ],
                }
            )
        return payload
