#!/usr/bin/env python
'''
Compute a triad roughness landscape and report its minima

Usage:   ./landscape.py [-h] [--preset saw] [--partials 8] [--steps 128] [output.npz]
'''

import argparse
import sys

import numpy as np

import roughscape


def landscape(preset, partials, steps, output_file=None):
    '''Landscape analysis function

    :parameters:
      - preset : str
          Timbre preset (saw, square, triangle, sine)

      - partials : int
          Number of harmonics in the timbre

      - steps : int
          Samples per axis before refinement

      - output_file : str or None
          Path to save the landscape as a compressed .npz archive
    '''

    timbre = roughscape.TimbreConfig(preset=preset, partial_count=partials)
    sampling = roughscape.SamplingConfig(x_steps=steps, y_steps=steps)

    print('Computing {} x {} landscape'.format(steps, steps))
    grid = roughscape.compute_grid(timbre, sampling)
    print('Sampled {} points, {} pairs skipped'.format(
        grid.diagnostics.points, grid.diagnostics.skipped_pairs))

    minima = roughscape.find_minima(grid, refine=True, max_count=12)
    minima = roughscape.label_minima(minima)

    print('Deepest minima:')
    for m in minima:
        print('  x={:0.4f} ({})  y={:0.4f} ({})  depth={:0.4f}'.format(
            m.x, m.label_x or m.rational_x, m.y, m.label_y or m.rational_y, m.depth))

    # Compare the scale of the minima against 12-EDO
    for scale in [roughscape.scale_from_minima(minima), roughscape.edo_scale(12)]:
        result = roughscape.compare_scale(grid, scale.ratios)
        print('{:>18s}: average {:0.4f}, max {:0.4f} over {} pairs'.format(
            scale.name, result.average, result.max_roughness, result.count))

    if output_file is not None:
        print('Saving output to ', output_file)
        np.savez_compressed(output_file, xs=grid.xs, ys=grid.ys,
                            values=grid.values())
    print('done!')


def process_arguments(args):
    '''Argparse function to get the program parameters'''

    parser = argparse.ArgumentParser(description='Roughness landscape example')

    parser.add_argument('-p', '--preset',
                        action='store',
                        default='saw',
                        help='timbre preset')

    parser.add_argument('-n', '--partials',
                        action='store',
                        type=int,
                        default=8,
                        help='number of partials')

    parser.add_argument('-s', '--steps',
                        action='store',
                        type=int,
                        default=128,
                        help='samples per axis')

    parser.add_argument('output_file',
                        action='store',
                        nargs='?',
                        default=None,
                        help='path to the output file (.npz)')

    return vars(parser.parse_args(args))


if __name__ == '__main__':
    # Get the parameters
    parameters = process_arguments(sys.argv[1:])

    # Run the analysis
    landscape(parameters['preset'], parameters['partials'],
              parameters['steps'], parameters['output_file'])
