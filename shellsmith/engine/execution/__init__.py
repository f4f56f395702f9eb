"""Execution pipeline for the environment engine.

This package contains the core execution components:

- **loader**: Descriptor loading (YAML text -> validated Descriptor)
- **resolver**: Platform resolution (Descriptor + platform -> ResolvedEnvironment)
- **environment**: Materialization (ResolvedEnvironment -> ActivatedShell)
- **hooks**: Hook execution (ActivatedShell + commands -> HookResult)
- **coordinator**: Invocation orchestration (setup -> resolve -> activate -> lock)
"""
