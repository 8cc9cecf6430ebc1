"""
hexsweep - exhaustive business discovery over a hexagonal grid.

This package contains the acquisition pipeline that sweeps an area for
businesses through a quota-limited search API:
- core: exceptions, rate gate, quota tracker, logging and the dependency container
- config: Pydantic settings
- geo: H3 grid adapter, coverage planner, density detector and subdivider
- collectors: business search providers (Yelp Fusion)
- orchestration: per-cell search orchestrator and the batch cell pipeline
- storage: persistent store adapters, staging writer, cell cache, import logs
- monitoring: Prometheus metrics
- api: FastAPI application exposing runs, progress and quota
- models: Pydantic data models shared by all of the above
"""

__version__ = "0.1.0"
