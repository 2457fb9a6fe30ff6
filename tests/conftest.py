#!/usr/bin/env python
# Test configuration and customization

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--roughscape-quick",
        action="store_true",
        default=False,
        help="Skip tests that compute large landscapes",
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--roughscape-quick"):
        # User wants to run the slow tests, so do nothing.
        return
    skip_slow = pytest.mark.skip(reason="testing in quick mode")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: mark tests that compute large landscapes."
    )


@pytest.fixture
def make_grid():
    """Wrap a 2-d array of values in a GridData on the given axes."""
    import numpy as np
    import roughscape

    def _make(values, xs=None, ys=None, log_sampling=False):
        values = np.asarray(values, dtype=float)
        ny, nx = values.shape
        if xs is None:
            xs = roughscape.build_axis(1.0, 2.0, nx, log_sampling)
        if ys is None:
            ys = roughscape.build_axis(1.0, 2.0, ny, log_sampling)
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        width, height, area = roughscape.core.cell_metrics(xs, ys)
        return roughscape.GridData(
            xs=xs,
            ys=ys,
            log_x=np.log(xs),
            log_y=np.log(ys),
            raw=values.ravel().copy(),
            normalized=values.ravel().copy(),
            cell_width=width,
            cell_height=height,
            cell_area=area,
            diagnostics=roughscape.GridDiagnosticsSummary(points=values.size),
            min_raw=float(values.min()),
            max_raw=float(values.max()),
            min_norm=float(values.min()),
            max_norm=float(values.max()),
            log_sampling=log_sampling,
        )

    return _make
