"""archforge: multi-architecture image build-and-publish pipeline.

Fans out one cross-compile + push-by-digest job per build target, collects
every platform digest as a write-once marker, and publishes a single
multi-architecture manifest list only when the digest set is complete.
"""

__version__ = "0.1.0"
__description__ = "Multi-architecture container image build-and-publish pipeline"

from archforge.core.orchestrator import Pipeline, PipelineBackends
from archforge.cli.app import app as cli

__all__ = ["Pipeline", "PipelineBackends", "cli", "__version__"]
