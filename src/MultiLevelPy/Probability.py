#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- MultiLevelPy --
##  Library for Bayesian Inference of Brownian Traits on Hierarchical Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

""" 
Author : Mark Kessler
Last Edit : 10/18/26
First Included in Version : 0.1.0

Numerical helpers shared by the SMC sampler and the MCMC tree factor. The 
binomial log-probability in particular must be the same function in both 
places.
"""

import math
import numpy as np
from scipy import special, stats


def logit(p : float) -> float:
    """
    Map a probability in (0, 1) to the real line.
    """
    return float(special.logit(p))

def logistic(x : float) -> float:
    """
    Inverse of logit.
    """
    return float(special.expit(x))

def log_binomial_pr(number_of_trials : int, 
                    number_of_successes : int, 
                    p : float) -> float:
    """
    Exact log-probability of observing 'number_of_successes' out of 
    'number_of_trials' independent trials with success probability p.

    Args:
        number_of_trials (int): n >= 0
        number_of_successes (int): 0 <= k <= n
        p (float): success probability in [0, 1]
    Returns:
        float: log Binomial(k | n, p). -inf where the counts are impossible 
               under p (ie, p = 0 and k > 0).
    """
    return float(stats.binom.logpmf(number_of_successes, number_of_trials, p))

def log_binomial_logit_pr(number_of_trials : int,
                          number_of_successes : int,
                          x : float) -> float:
    """
    Same as log_binomial_pr(n, k, logistic(x)), but computed from the logit
    directly so that rates very close to 0 or 1 keep a finite log-probability
    (logistic(40) rounds to 1.0, while log(1 - logistic(40)) is about -40).

    Args:
        number_of_trials (int): n >= 0
        number_of_successes (int): 0 <= k <= n
        x (float): success probability on the logit scale
    Returns:
        float: log Binomial(k | n, logistic(x)).
    """
    n, k = number_of_trials, number_of_successes
    log_pr = special.gammaln(n + 1) - special.gammaln(k + 1) \
             - special.gammaln(n - k + 1)
    # 0 * log(0) is 0 here, which matters when x is infinite
    if k > 0:
        log_pr += k * special.log_expit(x)
    if n - k > 0:
        log_pr += (n - k) * special.log_expit(-x)
    return float(log_pr)

def log_beta_binomial_normalizer(number_of_trials : int,
                                 number_of_successes : int,
                                 alpha : float,
                                 beta : float) -> float:
    """
    Log marginal probability of the counts when p ~ Beta(alpha, beta), ie the
    normalizing constant of the conjugate Beta posterior.

    Args:
        number_of_trials (int): n
        number_of_successes (int): k
        alpha (float): prior pseudo-count of successes
        beta (float): prior pseudo-count of failures
    Returns:
        float: log C(n, k) + log B(alpha + k, beta + n - k) - log B(alpha, beta)
    """
    n, k = number_of_trials, number_of_successes
    log_choose = special.gammaln(n + 1) - special.gammaln(k + 1) \
                 - special.gammaln(n - k + 1)
    return float(log_choose + special.betaln(alpha + k, beta + n - k) 
                 - special.betaln(alpha, beta))

def sanitize_log_weights(log_weights) -> np.ndarray:
    """
    Copy weights into a float array, treating NaN as -inf.
    """
    weights = np.array(log_weights, dtype = float)
    weights[np.isnan(weights)] = -np.inf
    return weights

def log_sum_exp(log_weights) -> float:
    """
    Numerically stable log(sum(exp(w))). Returns -inf for an empty vector or 
    one in which every entry is -inf.
    """
    weights = sanitize_log_weights(log_weights)
    if weights.size == 0 or np.all(np.isneginf(weights)):
        return -math.inf
    return float(special.logsumexp(weights))

def normalize_log_weights(log_weights) -> np.ndarray:
    """
    Turn log weights into probabilities summing to one. -inf weights map to 
    exactly zero.

    Raises:
        ValueError: if every weight is -inf.
    """
    weights = sanitize_log_weights(log_weights)
    total = log_sum_exp(weights)
    if total == -math.inf:
        raise ValueError("Cannot normalize weights that are all -inf")
    probabilities = np.exp(weights - total)
    return probabilities / probabilities.sum()

def effective_sample_size(log_weights) -> float:
    """
    Kish's effective sample size, 1 / sum(w_i^2) over normalized weights. 
    Zero when every weight is -inf.
    """
    try:
        probabilities = normalize_log_weights(log_weights)
    except ValueError:
        return 0.0
    return float(1.0 / np.sum(probabilities ** 2))
