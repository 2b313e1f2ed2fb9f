#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
parameter and object checks

"""
import numbers

import anndata as ad


def is_anndata(data):
    """Check if an object is an AnnData object."""
    return isinstance(data, ad.AnnData)


def check_anndata(data, name="adata"):
    if not is_anndata(data):
        raise TypeError(f"{name} must be an AnnData object, got {type(data).__name__}")


def check_positive(**params):
    """Check that parameters are positive as expected.
    Raises
    ------
    ValueError : unacceptable choice of parameters
    """
    for p in params:
        if params[p] <= 0:
            raise ValueError("Expected {} > 0, got {}".format(p, params[p]))


def check_int(**params):
    """Check that parameters are integers as expected."""
    for p in params:
        if not isinstance(params[p], numbers.Integral):
            raise ValueError("Expected {} integer, got {}".format(p, params[p]))


def check_in(choices, **params):
    """Checks parameters are in a list of allowed parameters.
    Parameters
    ----------
    choices : array-like, accepted values
    params : object
        Named arguments, parameters to be checked
    Raises
    ------
    ValueError : unacceptable choice of parameters
    """
    for p in params:
        if params[p] not in choices:
            raise ValueError(
                "{} value {} not recognized. Choose from {}".format(
                    p, params[p], choices
                )
            )


def check_between(v_min, v_max, **params):
    """Checks parameters are in a specified range (inclusive)."""
    for p in params:
        if params[p] < v_min or params[p] > v_max:
            raise ValueError(
                "Expected {} between {} and {}, "
                "got {}".format(p, v_min, v_max, params[p])
            )


def check_obs_key(adata, key, hint=None):
    if key not in adata.obs.columns:
        message = f"'{key}' is not present in adata.obs."
        if hint:
            message += f" {hint}"
        raise KeyError(message)


def check_obsm_key(adata, key, hint=None):
    if key not in adata.obsm.keys():
        message = f"The representation {key} is not present in adata.obsm."
        if hint:
            message += f" {hint}"
        raise KeyError(message)
