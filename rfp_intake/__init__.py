"""
RFP intake service.

Turns raw RFP documents (PDF) and estimator workbooks (xlsx) into
structured LED screen records with cost breakdowns and a gap report
for the fields a human still has to fill in.
"""
