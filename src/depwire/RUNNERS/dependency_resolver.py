"""
Dependency resolution for services to determine startup and shutdown order.
"""
from typing import Dict, Iterable, List, Optional, Set
from ..MODELS.deployment_descriptor import DeploymentDescriptor
from ..exceptions import CircularDependencyError, DanglingDependencyError


class DependencyResolver:
    """
    Resolves the startup and shutdown order of services based on their dependencies.
    """
    def _graph(self, descriptor: DeploymentDescriptor) -> Dict[str, List[str]]:
        return {name: svc.dependency_names for name, svc in descriptor.services.items()}

    def resolve_order(self,
                      descriptor: DeploymentDescriptor,
                      services: Optional[Iterable[str]] = None) -> List[str]:
        """
        Determines the correct order to start services using topological sort.
        Ties are broken by declaration order, so the result is stable.

        :param descriptor: The deployment descriptor.
        :param services: Restrict to these services and their transitive dependencies.
        :return: Service names in the order they should be started.
        :raises DanglingDependencyError: If a dependency names an undeclared service.
        :raises CircularDependencyError: If a circular dependency is detected.
        """
        dependencies = self._graph(descriptor)
        roots = list(services) if services is not None else list(dependencies)

        ordered: List[str] = []
        visited: Set[str] = set()
        path: List[str] = []

        def visit(name):
            """
            Recursive function for topological sort.
            """
            if name in path:
                raise CircularDependencyError(path[path.index(name):] + [name])
            if name in visited:
                return
            path.append(name)
            for dep in dependencies[name]:
                if dep not in dependencies:
                    raise DanglingDependencyError(name, dep)
                visit(dep)
            path.pop()
            visited.add(name)
            ordered.append(name)

        for name in roots:
            if name not in dependencies:
                raise KeyError(f"No such service: {name}")
            visit(name)

        return ordered

    def shutdown_order(self, descriptor: DeploymentDescriptor) -> List[str]:
        """
        Services in the order they should be stopped: dependents first.
        """
        return list(reversed(self.resolve_order(descriptor)))

    def find_cycle(self, descriptor: DeploymentDescriptor) -> Optional[List[str]]:
        """
        Returns one dependency cycle as a closed path (first == last), or None.
        Edges to undeclared services are ignored.
        """
        try:
            self.resolve_order(descriptor)
        except CircularDependencyError as e:
            return e.cycle
        except DanglingDependencyError:
            pruned = descriptor.model_copy(deep=True)
            for svc in pruned.services.values():
                svc.depends_on = [e for e in svc.depends_on if e.service in pruned.services]
            return self.find_cycle(pruned)
        return None

    def startup_levels(self, descriptor: DeploymentDescriptor) -> List[List[str]]:
        """
        Groups services into levels; every service only depends on earlier levels,
        so services of one level could be started concurrently.
        """
        order = self.resolve_order(descriptor)
        dependencies = self._graph(descriptor)
        depth: Dict[str, int] = {}
        for name in order:
            depth[name] = 1 + max((depth[d] for d in dependencies[name]), default=-1)

        levels: List[List[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for name in order:
            levels[depth[name]].append(name)
        return levels

    def dependents(self, descriptor: DeploymentDescriptor, name: str) -> List[str]:
        """
        All services that directly or transitively depend on `name`, in start order.
        """
        dependencies = self._graph(descriptor)
        found: Set[str] = set()
        frontier = [name]
        while frontier:
            current = frontier.pop()
            for svc, deps in dependencies.items():
                if current in deps and svc not in found:
                    found.add(svc)
                    frontier.append(svc)
        return [svc for svc in self.resolve_order(descriptor) if svc in found]
