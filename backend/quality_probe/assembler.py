"""Map a settled estimate onto the public report shape."""
from quality_probe.models import MediaResult, ProbeResult, RunningEstimate


def assemble(estimate: RunningEstimate) -> ProbeResult:
    return ProbeResult(
        mos=estimate.quality_score,
        audio=MediaResult(bandwidth=estimate.bandwidth.audio),
        video=MediaResult(bandwidth=estimate.bandwidth.video),
    )
