# amod_dispatch/domain/mechanics/mechanics_factory.py

from amod_dispatch.config.models import WorldModel
from amod_dispatch.domain.mechanics.mechanics_core import Mechanics
from amod_dispatch.runtime.registries import make_route_planner


def build_mechanics(cfg: WorldModel) -> Mechanics:
    return Mechanics(route_planner=make_route_planner(cfg.route_planner), speed_mps=cfg.speed_mps)
