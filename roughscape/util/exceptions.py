#!/usr/bin/env python
# -*- encoding: utf-8 -*-
'''Exception classes for roughscape'''


class RoughscapeError(Exception):
    '''The root roughscape exception class'''
    pass


class ParameterError(RoughscapeError):
    '''Exception class for mal-formed inputs'''
    pass


class CancelledError(RoughscapeError):
    '''Raised when a computation is cancelled before any complete grid exists'''
    pass
