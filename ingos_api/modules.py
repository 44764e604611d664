from __future__ import annotations

from dataclasses import dataclass


class ModuleGraphError(RuntimeError):
    pass


@dataclass(frozen=True)
class ModuleDefinition:
    name: str
    depends_on: tuple[str, ...] = ()
    # Directory under ingos_api/resources holding the module's embedded files.
    resource_dir: str | None = None


ROOT_MODULE = "api"

MODULES: dict[str, ModuleDefinition] = {
    module.name: module
    for module in (
        ModuleDefinition("domain_shared", resource_dir="domain_shared"),
        ModuleDefinition("domain", depends_on=("domain_shared",), resource_dir="domain"),
        ModuleDefinition("application_contracts", depends_on=("domain_shared",), resource_dir="application_contracts"),
        ModuleDefinition("application", depends_on=("domain", "application_contracts"), resource_dir="application"),
        ModuleDefinition("infrastructure", depends_on=("domain",)),
        ModuleDefinition("caching"),
        ModuleDefinition("framework_http_api", resource_dir="framework"),
        ModuleDefinition("logging"),
        ModuleDefinition("swagger"),
        ModuleDefinition(
            ROOT_MODULE,
            depends_on=(
                "caching",
                "application",
                "infrastructure",
                "framework_http_api",
                "logging",
                "swagger",
            ),
        ),
    )
}


def resolve_initialization_order(
    root: str = ROOT_MODULE,
    modules: dict[str, ModuleDefinition] | None = None,
) -> list[ModuleDefinition]:
    """Return ``root`` and everything it depends on, dependencies first.

    Siblings keep their declaration order. Raises ``ModuleGraphError`` for
    unknown modules and dependency cycles.
    """
    graph = MODULES if modules is None else modules
    ordered: list[ModuleDefinition] = []
    done: set[str] = set()
    visiting: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in visiting:
            cycle = " -> ".join([*visiting[visiting.index(name) :], name])
            raise ModuleGraphError(f"Module dependency cycle: {cycle}")
        module = graph.get(name)
        if module is None:
            raise ModuleGraphError(f"Unknown module: {name}")
        visiting.append(name)
        for dependency in module.depends_on:
            visit(dependency)
        visiting.pop()
        done.add(name)
        ordered.append(module)

    visit(root)
    return ordered
