# pacsource/modules/context.py
"""
The explicit application context.

Settings, the toolchain, the AUR client, the prompter and the console are
built once at startup and handed to everything else through one Context
instance instead of module globals.
"""

from __future__ import annotations
from typing import Optional

from rich.console import Console

from pacsource.modules.aur import AURClient
from pacsource.modules.config import Settings
from pacsource.modules.install import Installer
from pacsource.modules.prompt import ConsolePrompter, DefaultPrompter, Prompter
from pacsource.modules.resolver import DependencyResolver
from pacsource.modules.tools import Toolchain


class Context:
    def __init__(self,
                 settings: Settings,
                 tools: Toolchain,
                 aur: AURClient,
                 prompter: Prompter,
                 console: Optional[Console] = None):
        self.settings = settings
        self.tools = tools
        self.aur = aur
        self.prompter = prompter
        self.console = console or Console()
        self.resolver = DependencyResolver(self)
        self.installer = Installer(self)

    @classmethod
    def create(cls, noconfirm: bool = False, settings: Optional[Settings] = None) -> "Context":
        settings = settings or Settings.load()
        tools = Toolchain.discover(settings.tools)
        console = Console()
        prompter = DefaultPrompter(console) if noconfirm else ConsolePrompter(console)
        return cls(settings, tools, AURClient.from_settings(settings), prompter, console)
