"""Multinomial logit on a simulated conjoint study.

Run from repository root:
    python examples/conjoint_mnl.py

The same run is available from the command line:
    mlekit simulate mnl -o examples/conjoint.csv
    mlekit estimate examples/conjoint.yaml
"""

from __future__ import annotations

import numpy as np

from mlekit import ChoiceData, estimate_mle, sample_posterior_mh, simulate_choice_data

TRUE_BETA = {"brand_N": 1.0, "brand_P": 0.5, "ad": -0.8, "price": -0.1}


def main() -> None:
    frame = simulate_choice_data(100, 10, 3, TRUE_BETA, seed=42)
    data = ChoiceData.from_frame(frame, "choice", list(TRUE_BETA), ["resp", "task"])

    mle = estimate_mle(data)
    print(mle.summary())
    print()

    posterior = sample_posterior_mh(
        data,
        {"brand_N": 5.0, "brand_P": 5.0, "ad": 5.0, "price": 1.0},
        proposal_scale={"brand_N": 0.05, "brand_P": 0.05, "ad": 0.05, "price": 0.005},
        seed=42,
    )
    print(posterior.summary())
    print()

    table = posterior.to_frame()
    table["true"] = [TRUE_BETA[name] for name in table.index]
    table["mle"] = mle.estimate
    print(table.to_string())


if __name__ == "__main__":
    np.set_printoptions(precision=6, suppress=True)
    main()
