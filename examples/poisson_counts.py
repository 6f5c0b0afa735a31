"""Poisson regression on simulated counts: MLE, bounded rate search and MH.

Run from repository root:
    python examples/poisson_counts.py
"""

from __future__ import annotations

import numpy as np

from mlekit import CountData, estimate_mle, estimate_rate, sample_posterior_mh, simulate_count_data


def main() -> None:
    frame = simulate_count_data(1500, (1.2, 0.3, -0.2), covariate_names=["age", "iscustomer"], seed=7)
    data = CountData.from_frame(frame, "y", ["age", "iscustomer"])

    # single rate, no covariates
    rate = estimate_rate(frame["y"].to_numpy())
    print(rate.summary())
    print(f"  sample mean:    {frame['y'].mean():.6f}")
    print()

    mle = estimate_mle(data)
    print(mle.summary())
    print()

    posterior = sample_posterior_mh(data, 5.0, proposal_scale=0.02, seed=42)
    print(posterior.summary())


if __name__ == "__main__":
    np.set_printoptions(precision=6, suppress=True)
    main()
