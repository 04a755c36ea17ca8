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
Docs   - [x]
Tests  - [x]
Design - [x]

Sufficient statistic algebra for Brownian motion on a tree.

A message summarizes everything a subtree says about the trait value at the
top of that subtree: a Gaussian with mean 'values' and variance 'variance', 
plus the log-likelihood of the subtree's observations once the trait values 
at its internal nodes have been integrated out. 

Combining n children under a common branch variance v treats each child 
message as a noisy view of the parent value x, m_i ~ N(x, s_i + v), and 
integrates x out under a flat prior. With w_i = 1 / (s_i + v), per dimension:

    parent mean      = sum(w_i m_i) / sum(w_i)
    parent variance  = 1 / sum(w_i)
    log-likelihood   = -(n - 1)/2 log(2 pi) + 1/2 sum(log w_i) 
                       - 1/2 log(sum(w_i))
                       - 1/2 (sum(w_i m_i^2) - sum(w_i m_i)^2 / sum(w_i))

For n = 2 this is the familiar N(m_1 - m_2; 0, s_1 + s_2 + 2v), and for 
n = 1 the increment is zero: the message is simply widened by v.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Sequence
import numpy as np

LOG_2PI : float = math.log(2 * math.pi)

#########################
#### EXCEPTION CLASS ####
#########################

class BrownianModelError(Exception):
    """
    This exception is raised when messages can not be built or combined for
    structural reasons (no children, mismatched dimensions). An invalid 
    branch variance is NOT an error, see Combination.
    """

    def __init__(self, message : str = "Invalid Brownian message") -> None:
        """
        Initialize the exception with an error message.

        Args:
            message (str, optional): A custom error message. Defaults to 
                                     "Invalid Brownian message".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

#######################
#### MESSAGE TYPES ####
#######################

@dataclass(frozen = True, eq = False)
class BrownianMessage:
    """
    Immutable sufficient statistic for one subtree.

    values -- the Gaussian mean, one entry per trait dimension
    variance -- the Gaussian variance, shared across dimensions
    log_likelihood -- cumulative marginal log-likelihood of the subtree
    effective_count -- number of observations summarized by this message
    degenerate -- true if this message, or any message combined into it, 
                  was flagged as degenerate
    """
    values : np.ndarray
    variance : float
    log_likelihood : float
    effective_count : float
    degenerate : bool

    def __post_init__(self) -> None:
        self.values.setflags(write = False)

    @property
    def dimension(self) -> int:
        return self.values.shape[0]

    def __repr__(self) -> str:
        return (f"BrownianMessage(values={self.values.tolist()}, "
                f"variance={self.variance}, "
                f"log_likelihood={self.log_likelihood}, "
                f"effective_count={self.effective_count}, "
                f"degenerate={self.degenerate})")


@dataclass(frozen = True)
class Combination:
    """
    Result of combining child messages. 'message' is None when the branch 
    variance was invalid, in which case log_likelihood is -inf.
    """
    message : BrownianMessage | None
    log_likelihood : float

    @property
    def is_valid(self) -> bool:
        return self.message is not None

##################
#### ALGEBRA #####
##################

def observation(values : Sequence[float], 
                effective_count : float = 1, 
                degenerate : bool = False) -> BrownianMessage:
    """
    Wrap directly observed (or imputed) trait values as a message with zero 
    variance and zero log-likelihood.

    Args:
        values (Sequence[float]): One value per trait dimension.
        effective_count (float, optional): Number of observations these 
                                           values stand for. Defaults to 1.
        degenerate (bool, optional): Degeneracy flag. Defaults to False.
    Returns:
        BrownianMessage: The observation message.
    Raises:
        BrownianModelError: If values is empty or not one dimensional.
    """
    array = np.array(values, dtype = float)
    if array.ndim != 1 or array.size == 0:
        raise BrownianModelError("Observed values must be a non-empty vector")
    return BrownianMessage(array, 0.0, 0.0, effective_count, degenerate)

def combine(children : Sequence[BrownianMessage], 
            variance : float) -> Combination:
    """
    Merge child messages into their parent's message, given the branch 
    variance separating the parent from each child.

    Args:
        children (Sequence[BrownianMessage]): At least one child message, all
                                              of the same dimension.
        variance (float): The branch variance. Must be strictly positive.
    Returns:
        Combination: The parent message (whose log_likelihood includes the 
                     children's) and the log-likelihood increment of this 
                     merge alone. If variance <= 0 or is not finite, the 
                     combination is invalid with increment -inf.
    Raises:
        BrownianModelError: If there are no children or their dimensions 
                            differ.
    """
    if len(children) == 0:
        raise BrownianModelError("Can not combine an empty list of messages")
    dimension = children[0].dimension
    if any(child.dimension != dimension for child in children):
        raise BrownianModelError("Child messages have mismatched dimensions")
    
    if not (variance > 0 and math.isfinite(variance)):
        return Combination(None, -math.inf)
    
    precisions = np.array([1.0 / (child.variance + variance) 
                           for child in children])
    means = np.stack([child.values for child in children])
    
    total_precision = precisions.sum()
    weighted_sum = precisions @ means
    weighted_squares = precisions @ (means ** 2)
    
    n = len(children)
    increment_per_dim = -0.5 * (n - 1) * LOG_2PI \
                        + 0.5 * np.log(precisions).sum() \
                        - 0.5 * math.log(total_precision) \
                        - 0.5 * (weighted_squares 
                                 - weighted_sum ** 2 / total_precision)
    increment = float(np.sum(increment_per_dim))
    
    parent = BrownianMessage(
        weighted_sum / total_precision,
        1.0 / total_precision,
        sum(child.log_likelihood for child in children) + increment,
        sum(child.effective_count for child in children),
        any(child.degenerate for child in children))
    
    return Combination(parent, increment)
