"""NPC Vibes 모듈 시스템"""

from npc_vibes.modules.base import Action, HostContext, HostModule
from npc_vibes.modules.module_manager import ModuleManager

__all__ = ["Action", "HostContext", "HostModule", "ModuleManager"]
