from .vpm3d import (
    ParticleField,
    Particle,
    ClassicVPM,
    ReformulatedVPM,
    FORMULATION_CLASSIC,
    FORMULATION_RVPM,
    Kernel,
    SINGULAR,
    GAUSSIAN,
    GAUSSIAN_ERF,
    WINCKELMANS,
    kernel_by_name,
    EvaluationConfig,
    RKStage,
    RK3_STAGES,
    NumbaConfig,
    ConfigurationMismatch,
    NumericDegeneracy,
)
from .operators import (
    VelocityJacobianEvaluator,
    SubfilterScaleModel,
    FreestreamProvider,
    RegularizationKernel,
    ViscousDiffusionOperator,
    RelaxationOperator,
    NoSFS,
    UniformFreestream,
    FunctionFreestream,
    Inviscid,
    CoreSpreading,
    PedrizzettiRelaxation,
)
from .timeintegration import (
    euler_classic,
    euler_reformulated,
    rk3_classic,
    rk3_reformulated,
    step,
    stretching,
    z_factor,
    INTEGRATORS,
)
from .api import (
    NumericsConfig, SimulationConfig,
    build_field, run,
)
from .plotting import plot_snapshot, SnapshotConfig
from .plotly_viz import plot_snapshot_interactive, PlotlySnapshotConfig

__all__ = [
    "ParticleField", "Particle",
    "ClassicVPM", "ReformulatedVPM", "FORMULATION_CLASSIC", "FORMULATION_RVPM",
    "Kernel", "SINGULAR", "GAUSSIAN", "GAUSSIAN_ERF", "WINCKELMANS", "kernel_by_name",
    "EvaluationConfig", "RKStage", "RK3_STAGES", "NumbaConfig",
    "ConfigurationMismatch", "NumericDegeneracy",
    "VelocityJacobianEvaluator", "SubfilterScaleModel", "FreestreamProvider",
    "RegularizationKernel", "ViscousDiffusionOperator", "RelaxationOperator",
    "NoSFS", "UniformFreestream", "FunctionFreestream", "Inviscid", "CoreSpreading",
    "PedrizzettiRelaxation",
    "euler_classic", "euler_reformulated", "rk3_classic", "rk3_reformulated",
    "step", "stretching", "z_factor", "INTEGRATORS",
    "NumericsConfig", "SimulationConfig", "build_field", "run",
    "plot_snapshot", "SnapshotConfig",
    "plot_snapshot_interactive", "PlotlySnapshotConfig",
]
